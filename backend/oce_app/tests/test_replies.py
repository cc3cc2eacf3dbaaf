"""Tests for inbound Smartlead replies and Gmail forwarding.

WHAT:
    - Shop resolution from the recipient mailbox
    - Conversation stored before the ack, reply counter bumped
    - Gmail forwarding after the ack, with one token refresh on 401
"""

import asyncio

import httpx
import pytest

from oce_app.models import EmailAccount, EmailConversation, EmailDomain, EmailSettings, OutreachCampaign
from oce_app.services.gmail_client import GmailAuthError
from oce_app.services.reply_service import forward_reply, store_inbound_reply

SHOP = "test-shop.myshopify.com"
IMPORT_PATH = "/users/me/messages/import"
TOKEN_URL = "oauth2.googleapis.com/token"

REPLY = {
    "from_email": "lead@prospect.io",
    "to_email": "REP@brandmail.com",
    "subject": "Re: Quick question",
    "email_body": "<p>Sounds interesting</p>",
    "campaign_id": 321,
    "lead_id": 9,
}


@pytest.fixture
def mailbox(repo, installed_shop):
    domain = repo.insert(EmailDomain, {"shop": installed_shop, "domain": "brandmail.com"})
    return repo.insert(EmailAccount, {
        "shop": installed_shop,
        "domain_id": domain.id,
        "email": "rep@brandmail.com",
        "smtp_host": "smtp.zoho.com",
        "imap_host": "imap.zoho.com",
    })


@pytest.fixture
def campaign(repo, installed_shop):
    return repo.insert(OutreachCampaign, {
        "shop": installed_shop,
        "name": "Spring launch",
        "smartlead_campaign_id": "321",
        "email_account_ids": [],
    })


@pytest.fixture
def gmail_settings(repo, installed_shop):
    return repo.insert(EmailSettings, {
        "shop": installed_shop,
        "gmail_access_token": "old-access",
        "gmail_refresh_token": "refresh-1",
        "gmail_forward_to": "owner@brand.com",
    })


def _settings(repo):
    repo.db.expire_all()
    return repo.select_one(EmailSettings, {"shop": SHOP})


class TestStoreInboundReply:
    def test_resolves_shop_and_campaign(self, repo, mailbox, campaign):
        conversation = store_inbound_reply(repo, REPLY)

        assert conversation.shop == SHOP
        assert conversation.email_account_id == mailbox.id
        assert conversation.campaign_id == campaign.id
        assert conversation.to_email == "rep@brandmail.com"
        assert conversation.body_html == "<p>Sounds interesting</p>"
        assert conversation.lead_id == "9"
        assert conversation.is_read is False

        repo.db.expire_all()
        assert repo.select_one(OutreachCampaign, {"id": campaign.id}).reply_count == 1

    def test_unknown_recipient_is_not_stored(self, repo, mailbox):
        assert store_inbound_reply(repo, {**REPLY, "to_email": "nobody@elsewhere.com"}) is None
        assert repo.count(EmailConversation) == 0

    def test_unknown_campaign_still_stored(self, repo, mailbox):
        conversation = store_inbound_reply(repo, {**REPLY, "campaign_id": 999})

        assert conversation.campaign_id is None
        assert conversation.smartlead_campaign_id == "999"


class TestForwardReply:
    def test_forwards_into_gmail(self, repo, mailbox, gmail_settings, clients, vendors):
        vendors.add("POST", IMPORT_PATH, {"id": "gm-1"})
        conversation = store_inbound_reply(repo, REPLY)

        result = asyncio.run(forward_reply(repo, clients, str(conversation.id)))

        assert result == {"forwarded": True, "gmail_message_id": "gm-1"}
        [request] = vendors.calls("POST", IMPORT_PATH)
        assert request.headers["Authorization"] == "Bearer old-access"
        assert vendors.body(request)["labelIds"] == ["INBOX", "UNREAD"]

        repo.db.expire_all()
        assert repo.select_one(EmailConversation, {"id": conversation.id}).gmail_message_id == "gm-1"

    def test_refreshes_once_on_401_and_persists_token(self, repo, mailbox, gmail_settings, clients, vendors):
        def import_message(request):
            if request.headers["Authorization"] == "Bearer old-access":
                return httpx.Response(401, json={"error": {"message": "Invalid Credentials"}})
            return httpx.Response(200, json={"id": "gm-2"})

        vendors.add("POST", IMPORT_PATH, import_message)
        vendors.add("POST", TOKEN_URL, {"access_token": "new-access", "expires_in": 3599})
        conversation = store_inbound_reply(repo, REPLY)

        result = asyncio.run(forward_reply(repo, clients, conversation.id))

        assert result == {"forwarded": True, "gmail_message_id": "gm-2"}
        assert len(vendors.calls("POST", TOKEN_URL)) == 1
        assert len(vendors.calls("POST", IMPORT_PATH)) == 2
        assert _settings(repo).gmail_access_token == "new-access"

    def test_second_401_gives_up_but_keeps_new_token(self, repo, mailbox, gmail_settings, clients, vendors):
        vendors.add("POST", IMPORT_PATH, {"error": {"message": "Invalid Credentials"}}, 401)
        vendors.add("POST", TOKEN_URL, {"access_token": "new-access"})
        conversation = store_inbound_reply(repo, REPLY)

        result = asyncio.run(forward_reply(repo, clients, conversation.id))

        assert result["forwarded"] is False
        assert result["reason"] == "error"
        assert len(vendors.calls("POST", TOKEN_URL)) == 1
        assert len(vendors.calls("POST", IMPORT_PATH)) == 2
        assert _settings(repo).gmail_access_token == "new-access"

    def test_token_endpoint_unreachable_is_swallowed(self, repo, mailbox, gmail_settings, clients, vendors):
        """WHY: a network failure during refresh must not crash the forwarding job."""

        def unreachable(request):
            raise httpx.ConnectError("Connection refused", request=request)

        vendors.add("POST", IMPORT_PATH, {"error": {"message": "Invalid Credentials"}}, 401)
        vendors.add("POST", TOKEN_URL, unreachable)
        conversation = store_inbound_reply(repo, REPLY)

        result = asyncio.run(forward_reply(repo, clients, conversation.id))

        assert result["forwarded"] is False
        assert result["reason"] == "error"
        assert result["error"].startswith("Token request failed: Connection refused")
        assert _settings(repo).gmail_access_token == "old-access"

    def test_code_exchange_transport_error_is_vendor_error(self, clients, vendors):
        def unreachable(request):
            raise httpx.ReadTimeout("timed out", request=request)

        vendors.add("POST", TOKEN_URL, unreachable)

        with pytest.raises(GmailAuthError):
            asyncio.run(clients.gmail(None, None).exchange_code("code-1", "https://app.example.com/cb"))

    def test_not_configured(self, repo, mailbox, clients, vendors):
        conversation = store_inbound_reply(repo, REPLY)

        assert asyncio.run(forward_reply(repo, clients, conversation.id)) == {
            "forwarded": False,
            "reason": "not_configured",
        }
        assert vendors.requests == []


class TestReplyWebhook:
    def test_stores_then_forwards(self, client, repo, mailbox, campaign, gmail_settings, vendors):
        vendors.add("POST", IMPORT_PATH, {"id": "gm-3"})

        response = client.post("/webhooks/smartlead/reply", json=REPLY)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["stored"] is True

        repo.db.expire_all()
        [conversation] = repo.select_many(EmailConversation, {"shop": SHOP})
        assert str(conversation.id) == body["conversation_id"]
        assert conversation.gmail_message_id == "gm-3"

    def test_forwarding_failure_does_not_fail_ack(self, client, mailbox, gmail_settings, vendors):
        vendors.add("POST", IMPORT_PATH, {"error": {"message": "Backend Error"}}, 500)

        response = client.post("/webhooks/smartlead/reply", json=REPLY)

        assert response.status_code == 200
        assert response.json()["stored"] is True

    def test_unknown_recipient_acknowledged(self, client, mailbox):
        response = client.post("/webhooks/smartlead/reply", json={**REPLY, "to_email": "x@nowhere.io"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "stored": False}

    def test_shared_secret(self, client, mailbox, test_settings):
        test_settings.SMARTLEAD_WEBHOOK_SECRET = "hook-secret"

        assert client.post("/webhooks/smartlead/reply", json=REPLY).status_code == 401
        accepted = client.post("/webhooks/smartlead/reply?secret=hook-secret", json=REPLY)
        assert accepted.status_code == 200
