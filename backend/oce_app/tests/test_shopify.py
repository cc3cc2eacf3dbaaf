"""Tests for tenant resolution, the install flow and lifecycle webhooks.

WHAT:
    - Stored session -> authenticated; valid id_token -> token exchange;
      otherwise 401 carrying the reauthorize headers
    - OAuth callback verifies HMAC and state before exchanging the code
    - app/uninstalled and shop/redact purge only the uninstalling shop
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
from jose import jwt

from oce_app.models import (
    EmailAccount,
    EmailConversation,
    EmailDomain,
    EmailSettings,
    OceSettings,
    OrderSync,
    OutreachCampaign,
    ShopifySession,
)
from oce_app.security import create_state_token
from oce_app.services.shopify_auth_service import INSTALL_STATE_PURPOSE

SHOP = "test-shop.myshopify.com"
API_KEY = "test-shopify-key"
API_SECRET = "test-shopify-secret"


def _session_token(shop=SHOP, secret=API_SECRET, audience=API_KEY):
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "iss": f"https://{shop}/admin",
            "dest": f"https://{shop}",
            "aud": audience,
            "sub": "42",
            "exp": int((now + timedelta(minutes=1)).timestamp()),
            "nbf": int((now - timedelta(seconds=5)).timestamp()),
            "iat": int(now.timestamp()),
        },
        secret,
        algorithm="HS256",
    )


def _signed_webhook(client, path, payload, shop=SHOP):
    body = json.dumps(payload).encode()
    signature = base64.b64encode(hmac.new(API_SECRET.encode(), body, hashlib.sha256).digest()).decode()
    return client.post(
        path,
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Shopify-Hmac-SHA256": signature,
            "X-Shopify-Shop-Domain": shop,
        },
    )


def _admin_graphql(vendors):
    """Answer the post-install GraphQL calls."""

    def respond(request):
        query = vendors.body(request)["query"]
        if "webhookSubscriptionCreate" in query:
            return {"data": {"webhookSubscriptionCreate": {
                "webhookSubscription": {"id": "gid://shopify/WebhookSubscription/1"},
                "userErrors": [],
            }}}
        if "metafieldsSet" in query:
            return {"data": {"metafieldsSet": {"metafields": [], "userErrors": []}}}
        return {"data": {"currentAppInstallation": {"id": "gid://shopify/AppInstallation/1"}}}

    vendors.add("POST", "/graphql.json", respond)


# ============================================================================
# Tenant resolution
# ============================================================================

class TestTenantResolution:
    def test_stored_session_authenticates(self, client, installed_shop, shop_headers):
        response = client.get("/settings", headers=shop_headers)

        assert response.status_code == 200
        assert response.json()["settings"]["shop"] == SHOP

    def test_shop_query_param_and_normalization(self, client, installed_shop):
        response = client.get("/settings", params={"shop": "https://Test-Shop.myshopify.com/admin"})

        assert response.status_code == 200

    def test_unknown_shop_gets_reauthorize_headers(self, client):
        response = client.get("/settings", headers={"X-Shop-Domain": "new-shop.myshopify.com"})

        assert response.status_code == 401
        assert response.headers["X-Shopify-API-Request-Failure-Reauthorize"] == "1"
        url = response.headers["X-Shopify-API-Request-Failure-Reauthorize-Url"]
        assert url.startswith("https://new-shop.myshopify.com/admin/oauth/authorize?")
        assert response.json()["reauthorize_url"] == url

        params = parse_qs(urlparse(url).query)
        assert params["client_id"] == [API_KEY]
        assert params["redirect_uri"] == ["https://oce-app.example.com/auth/callback"]

    def test_session_token_triggers_token_exchange(self, client, repo, vendors):
        vendors.add("POST", f"{SHOP}/admin/oauth/access_token", {"access_token": "shpat_exchanged", "scope": "read_all_orders"})

        response = client.get("/settings", headers={"Authorization": f"Bearer {_session_token()}"})

        assert response.status_code == 200
        exchange = vendors.body(vendors.calls("POST", "/admin/oauth/access_token")[0])
        assert exchange["grant_type"] == "urn:ietf:params:oauth:grant-type:token-exchange"
        session = repo.select_one(ShopifySession, {"shop": SHOP})
        assert session.id == f"offline_{SHOP}"
        assert session.access_token == "shpat_exchanged"

    def test_failed_token_exchange_is_unauthorized(self, client, vendors):
        vendors.add("POST", "/admin/oauth/access_token", {"error": "invalid_subject_token"}, 400)

        response = client.get("/settings", headers={"Authorization": f"Bearer {_session_token()}"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Session token exchange failed"}

    def test_forged_session_token_is_ignored(self, client, vendors):
        token = _session_token(secret="not-the-app-secret")

        response = client.get("/settings", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 400
        assert vendors.requests == []

    @pytest.mark.parametrize("shop", ["evil.com", "shop.myshopify.com.evil.io"])
    def test_invalid_shop_domain(self, client, shop):
        response = client.get("/settings", headers={"X-Shop-Domain": shop})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid Shopify store domain")


# ============================================================================
# Install flow
# ============================================================================

class TestInstallFlow:
    def _callback_params(self, **overrides):
        params = {
            "code": "auth-code-1",
            "shop": SHOP,
            "state": create_state_token(SHOP, API_SECRET, purpose=INSTALL_STATE_PURPOSE),
            "timestamp": "1700000000",
            **overrides,
        }
        message = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
        params["hmac"] = hmac.new(API_SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()
        return params

    def test_install_redirects_to_consent(self, client):
        response = client.get("/auth", params={"shop": "test-shop"}, follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith(f"https://{SHOP}/admin/oauth/authorize?")

    def test_callback_stores_session_and_registers_webhooks(self, client, repo, vendors):
        vendors.add("POST", "/admin/oauth/access_token", {"access_token": "shpat_installed", "scope": "read_all_orders"})
        _admin_graphql(vendors)

        response = client.get("/auth/callback", params=self._callback_params(), follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == f"https://{SHOP}/admin/apps/{API_KEY}"
        assert repo.select_one(ShopifySession, {"shop": SHOP}).access_token == "shpat_installed"
        assert repo.select_one(OceSettings, {"shop": SHOP}) is not None

        topics = [
            vendors.body(r)["variables"]["topic"]
            for r in vendors.calls("POST", "/graphql.json")
            if "webhookSubscriptionCreate" in vendors.body(r)["query"]
        ]
        assert topics == ["ORDERS_CREATE", "APP_UNINSTALLED"]

    def test_callback_survives_post_install_failures(self, client, repo, vendors):
        vendors.add("POST", "/admin/oauth/access_token", {"access_token": "shpat_installed"})
        vendors.add("POST", "/graphql.json", {"errors": "Internal error"}, 500)

        response = client.get("/auth/callback", params=self._callback_params(), follow_redirects=False)

        assert response.status_code == 307
        assert repo.select_one(ShopifySession, {"shop": SHOP}) is not None

    def test_bad_hmac_rejected(self, client, vendors):
        params = self._callback_params()
        params["code"] = "tampered"

        response = client.get("/auth/callback", params=params, follow_redirects=False)

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid HMAC signature"
        assert vendors.requests == []

    def test_state_for_another_shop_rejected(self, client, vendors):
        state = create_state_token("other.myshopify.com", API_SECRET, purpose=INSTALL_STATE_PURPOSE)

        response = client.get("/auth/callback", params=self._callback_params(state=state), follow_redirects=False)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid or expired state"
        assert vendors.requests == []

    def test_missing_config_is_503(self, client, test_settings):
        test_settings.SHOPIFY_APP_URL = None

        response = client.get("/auth", params={"shop": SHOP}, follow_redirects=False)

        assert response.status_code == 503
        assert "SHOPIFY_APP_URL" in response.json()["error"]


# ============================================================================
# Lifecycle webhooks
# ============================================================================

def _populate_tenant(repo, shop):
    repo.insert(ShopifySession, {"id": f"offline_{shop}", "shop": shop, "access_token": "shpat_x"})
    repo.insert(OceSettings, {"shop": shop, "api_key": "oce-key-123456789"})
    repo.insert(OrderSync, {"shop": shop, "shopify_order_id": "1"})
    repo.insert(EmailSettings, {"shop": shop, "smartlead_api_key": "sl-key"})
    domain = repo.insert(EmailDomain, {"shop": shop, "domain": f"{shop.split('.')[0]}-mail.com"})
    account = repo.insert(EmailAccount, {
        "shop": shop,
        "domain_id": domain.id,
        "email": f"rep@{domain.domain}",
        "smtp_host": "smtp.zoho.com",
        "imap_host": "imap.zoho.com",
    })
    campaign = repo.insert(OutreachCampaign, {"shop": shop, "name": "Launch", "email_account_ids": [str(account.id)]})
    repo.insert(EmailConversation, {
        "shop": shop,
        "campaign_id": campaign.id,
        "email_account_id": account.id,
        "from_email": "lead@prospect.io",
        "to_email": account.email,
    })


TENANT_TABLES = (
    ShopifySession, OceSettings, OrderSync, EmailSettings,
    EmailDomain, EmailAccount, OutreachCampaign, EmailConversation,
)


class TestLifecycleWebhooks:
    @pytest.mark.parametrize("path", ["/webhooks/app/uninstalled", "/webhooks/shop/redact"])
    def test_purges_only_the_uninstalling_shop(self, client, repo, path):
        _populate_tenant(repo, SHOP)
        _populate_tenant(repo, "keep-shop.myshopify.com")

        response = _signed_webhook(client, path, {"myshopify_domain": SHOP})

        assert response.status_code == 200
        assert response.json()["success"] is True
        for model in TENANT_TABLES:
            assert repo.count(model, {"shop": SHOP}) == 0, model.__tablename__
            assert repo.count(model, {"shop": "keep-shop.myshopify.com"}) == 1, model.__tablename__

    def test_uninstall_reports_deleted_counts(self, client, repo):
        _populate_tenant(repo, SHOP)

        response = _signed_webhook(client, "/webhooks/app/uninstalled", {})

        deleted = response.json()["deleted"]
        assert deleted["email_conversations"] == 1
        assert deleted["shopify_sessions"] == 1

    @pytest.mark.parametrize("path", ["/webhooks/customers/data_request", "/webhooks/customers/redact"])
    def test_customer_privacy_topics_acknowledged(self, client, path):
        response = _signed_webhook(client, path, {"customer": {"id": 7}, "shop_domain": SHOP})

        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_unsigned_request_rejected(self, client, repo):
        _populate_tenant(repo, SHOP)

        response = client.post(
            "/webhooks/app/uninstalled",
            json={},
            headers={"X-Shopify-Shop-Domain": SHOP, "X-Shopify-Hmac-SHA256": "bogus"},
        )

        assert response.status_code == 401
        assert repo.count(ShopifySession, {"shop": SHOP}) == 1
