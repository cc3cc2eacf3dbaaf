"""Shopify install and session lifecycle.

WHAT:
    Unauthenticated -> Installing (install URL issued)
                    -> Authenticated (offline token stored as `offline_<shop>`)
                    -> Uninstalled (tenant purged, see routers/shopify_webhooks.py)

    Two ways into Authenticated:
    - install callback: authorization code exchanged for an offline token
    - embedded request with a valid id_token: token-exchange grant, no redirect

WHY:
    Embedded apps should not bounce merchants through OAuth when App Bridge
    already proved who they are; the callback flow covers first installs and
    scope changes.
"""

import logging
from typing import Any, Dict

from oce_app.errors import Unauthorized
from oce_app.models import OceSettings, ShopifySession
from oce_app.repository import Repository
from oce_app.security import create_state_token
from oce_app.services.clients import VendorClients
from oce_app.services.shopify_client import ShopifyAPIError, build_install_url
from oce_app.services.storefront_service import ensure_script_tag, sync_app_metafields
from oce_app.services.webhook_subscription_service import subscribe_to_webhooks

logger = logging.getLogger(__name__)

INSTALL_STATE_PURPOSE = "shopify_install"


def session_id_for(shop: str) -> str:
    return f"offline_{shop}"


def install_url_for(shop: str, settings) -> str:
    """Build the OAuth consent URL with a signed, shop-bound `state`."""
    state = create_state_token(shop, settings.SHOPIFY_API_SECRET, purpose=INSTALL_STATE_PURPOSE)
    return build_install_url(
        shop=shop,
        api_key=settings.SHOPIFY_API_KEY,
        scopes=settings.shopify_scopes,
        redirect_uri=f"{settings.SHOPIFY_APP_URL.rstrip('/')}/auth/callback",
        state=state,
    )


def store_offline_session(repo: Repository, shop: str, token_data: Dict[str, Any]) -> ShopifySession:
    access_token = token_data.get("access_token")
    if not access_token:
        logger.error("[SHOPIFY_OAUTH] Missing access token in response for %s", shop)
        raise Unauthorized("Shopify did not return an access token")

    session = repo.upsert(
        ShopifySession,
        {
            "id": session_id_for(shop),
            "shop": shop,
            "access_token": access_token,
            "scope": token_data.get("scope", ""),
            "is_online": False,
        },
        conflict_keys=("id",),
    )
    logger.info("[SHOPIFY_OAUTH] Stored offline session for %s (scope=%s)", shop, session.scope)
    return session


async def exchange_session_token(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    id_token: str,
) -> ShopifySession:
    """Upgrade a verified App Bridge id_token to a stored offline token."""
    try:
        token_data = await clients.shopify_auth(shop).exchange_session_token(id_token)
    except ShopifyAPIError as e:
        logger.warning("[SHOPIFY_OAUTH] Token exchange failed for %s: %s", shop, e)
        raise Unauthorized("Session token exchange failed") from e

    session = store_offline_session(repo, shop, token_data)
    repo.get_or_create(OceSettings, {"shop": shop})
    return session


async def complete_install(
    repo: Repository,
    clients: VendorClients,
    settings,
    shop: str,
    code: str,
) -> ShopifySession:
    """Finish the authorization-code flow and run the post-install steps."""
    token_data = await clients.shopify_auth(shop).exchange_code(code)
    session = store_offline_session(repo, shop, token_data)
    repo.get_or_create(OceSettings, {"shop": shop})
    await run_post_install(repo, clients, settings, shop, session.access_token)
    return session


async def run_post_install(
    repo: Repository,
    clients: VendorClients,
    settings,
    shop: str,
    access_token: str,
) -> Dict[str, Any]:
    """Best-effort: webhooks, app metafields and the SDK script tag.

    Each step is attempted independently. Failures are logged and returned,
    never raised, so an install is not rolled back by a flaky Admin API.
    """
    admin = clients.shopify_admin(shop, access_token)
    oce_settings = repo.select_one(OceSettings, {"shop": shop})
    results: Dict[str, Any] = {}

    results["webhooks"] = await subscribe_to_webhooks(admin, settings.SHOPIFY_APP_URL)
    results["metafields"] = await sync_app_metafields(admin, oce_settings)

    try:
        results["script_tag"] = await ensure_script_tag(admin, oce_settings, settings.OCE_SDK_URL)
    except ShopifyAPIError as e:
        logger.warning("[SHOPIFY_OAUTH] Script tag setup failed for %s: %s", shop, e)
        results["script_tag"] = {"error": e.message}

    return results
