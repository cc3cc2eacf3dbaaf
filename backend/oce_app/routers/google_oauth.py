"""Google OAuth callback for Gmail reply forwarding.

WHAT:
    Exchanges the consent code, stores the Gmail tokens on the shop's
    EmailSettings and sends the merchant back into the embedded app.
WHY:
    Replies are copied into the merchant's own Gmail inbox; that needs an
    offline refresh token.
REFERENCES:
    - https://developers.google.com/identity/protocols/oauth2/web-server
    - oce_app/routers/email_settings.py (issues the consent URL)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from oce_app.deps import Settings, get_repository, get_settings, get_vendor_clients
from oce_app.errors import ValidationFailed
from oce_app.repository import Repository
from oce_app.services.clients import VendorClients
from oce_app.services.email_settings_service import connect_gmail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/google", tags=["Google OAuth"])


@router.get("/callback")
async def google_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
    clients: VendorClients = Depends(get_vendor_clients),
):
    if error:
        logger.error("[GMAIL] OAuth error: %s", error)
        raise ValidationFailed(f"Google authorization failed: {error}")
    if not code:
        raise ValidationFailed("Missing authorization code")

    shop = await connect_gmail(repo, clients, settings, code, state)

    if settings.SHOPIFY_API_KEY:
        return RedirectResponse(url=f"https://{shop}/admin/apps/{settings.SHOPIFY_API_KEY}?gmail=connected")
    return {"success": True, "shop": shop}
