"""Shopify install flow endpoints.

WHAT:
    GET /auth           -> redirect to the shop's OAuth consent screen
    GET /auth/callback  -> verify HMAC + state, exchange code, store the
                           offline session, run post-install setup, and
                           return the merchant to the embedded app

WHY:
    Embedded requests normally authenticate via session-token exchange
    (oce_app/deps.py). This flow covers first install and scope changes.

REFERENCES:
    - https://shopify.dev/docs/apps/auth/oauth/getting-started
    - oce_app/services/shopify_auth_service.py
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from oce_app.deps import Settings, get_repository, get_settings, get_vendor_clients, require_shopify_config
from oce_app.errors import Unauthorized, ValidationFailed
from oce_app.repository import Repository
from oce_app.security import decode_state_token, verify_query_hmac
from oce_app.services.clients import VendorClients
from oce_app.services.shopify_auth_service import INSTALL_STATE_PURPOSE, complete_install, install_url_for
from oce_app.services.shopify_client import ShopifyAPIError, normalize_shop_domain, validate_shop_domain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Shopify OAuth"])


def _valid_shop(shop: Optional[str]) -> str:
    if not shop:
        raise ValidationFailed("Missing shop parameter")
    shop_domain = normalize_shop_domain(shop)
    if not validate_shop_domain(shop_domain):
        raise ValidationFailed(f"Invalid Shopify store domain: {shop_domain}. Expected format: mystore.myshopify.com")
    return shop_domain


@router.get("")
def shopify_install(
    shop: Optional[str] = Query(None, description="Shopify store domain (e.g., 'mystore.myshopify.com')"),
    settings: Settings = Depends(get_settings),
):
    """Redirect the merchant to Shopify's consent screen."""
    require_shopify_config(settings)
    shop_domain = _valid_shop(shop)
    logger.info("[SHOPIFY_OAUTH] Starting install for %s", shop_domain)
    return RedirectResponse(url=install_url_for(shop_domain, settings))


@router.get("/callback")
async def shopify_callback(
    request: Request,
    code: Optional[str] = Query(None),
    shop: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
    clients: VendorClients = Depends(get_vendor_clients),
):
    """Finish the install.

    Post-install steps (webhooks, metafields, script tag) are best-effort and
    never block the redirect.
    """
    require_shopify_config(settings)
    shop_domain = _valid_shop(shop)

    if not verify_query_hmac(dict(request.query_params), settings.SHOPIFY_API_SECRET):
        logger.warning("[SHOPIFY_OAUTH] Invalid callback HMAC for %s", shop_domain)
        raise Unauthorized("Invalid HMAC signature")

    if state is not None:
        state_shop = decode_state_token(state, settings.SHOPIFY_API_SECRET, purpose=INSTALL_STATE_PURPOSE)
        if state_shop != shop_domain:
            logger.error("[SHOPIFY_OAUTH] State mismatch: expected %s, got %s", shop_domain, state_shop)
            raise ValidationFailed("Invalid or expired state")

    if not code:
        raise ValidationFailed("Missing authorization code")

    try:
        await complete_install(repo, clients, settings, shop_domain, code)
    except ShopifyAPIError as e:
        logger.error("[SHOPIFY_OAUTH] Token exchange failed for %s: %s", shop_domain, e)
        raise Unauthorized("Token exchange failed") from e

    logger.info("[SHOPIFY_OAUTH] Install complete for %s", shop_domain)
    return RedirectResponse(url=f"https://{shop_domain}/admin/apps/{settings.SHOPIFY_API_KEY}")
