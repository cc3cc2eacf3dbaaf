"""Outreach credentials and WHOIS contact.

WHAT:
    Read/patch the per-shop EmailSettings row, probe the Cloudflare and
    Smartlead credentials, and connect/disconnect Gmail reply forwarding.

WHY:
    Every outreach operation starts by loading these credentials, so the
    loaders that raise ConfigurationMissing live here too.
"""

import logging
from typing import Any, Dict, Mapping, Tuple

from oce_app.errors import ConfigurationMissing, ValidationFailed
from oce_app.models import EmailSettings
from oce_app.repository import Repository
from oce_app.security import create_state_token, decode_state_token, mask_secret
from oce_app.services.clients import VendorClients
from oce_app.services.gmail_client import GmailAPIError, build_authorization_url

logger = logging.getLogger(__name__)

GMAIL_STATE_PURPOSE = "gmail_connect"

# Order matters: it is the order missing fields are reported in.
WHOIS_FIELDS = (
    "first_name",
    "last_name",
    "address",
    "city",
    "state",
    "zip",
    "country",
    "phone",
    "email",
)

UPDATABLE_FIELDS = (
    "cloudflare_account_id",
    "cloudflare_api_token",
    "smartlead_api_key",
    "gmail_forward_to",
    *(f"whois_{field}" for field in WHOIS_FIELDS),
)


def get_or_create_email_settings(repo: Repository, shop: str) -> EmailSettings:
    return repo.get_or_create(EmailSettings, {"shop": shop})


def serialize_email_settings(settings: EmailSettings) -> Dict[str, Any]:
    """Masked view; Gmail tokens are reduced to `has_gmail`."""
    return {
        "shop": settings.shop,
        "cloudflare_account_id": settings.cloudflare_account_id,
        "cloudflare_api_token": mask_secret(settings.cloudflare_api_token),
        "smartlead_api_key": mask_secret(settings.smartlead_api_key),
        "gmail_forward_to": settings.gmail_forward_to,
        "has_cloudflare": bool(settings.cloudflare_api_token and settings.cloudflare_account_id),
        "has_smartlead": bool(settings.smartlead_api_key),
        "has_gmail": bool(settings.gmail_refresh_token or settings.gmail_access_token),
        **{f"whois_{field}": getattr(settings, f"whois_{field}") for field in WHOIS_FIELDS},
    }


def get_email_settings_payload(repo: Repository, shop: str) -> Dict[str, Any]:
    return serialize_email_settings(get_or_create_email_settings(repo, shop))


def update_email_settings(repo: Repository, shop: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
    get_or_create_email_settings(repo, shop)
    values = {key: value for key, value in patch.items() if key in UPDATABLE_FIELDS and value is not None}
    if values:
        settings = repo.update(EmailSettings, values, {"shop": shop})
    else:
        settings = repo.select_one(EmailSettings, {"shop": shop})
    logger.info("[OUTREACH] Email settings updated for %s: %s", shop, sorted(values))
    return serialize_email_settings(settings)


# =============================================================================
# CREDENTIAL LOADERS
# =============================================================================

def require_cloudflare(repo: Repository, shop: str) -> Tuple[EmailSettings, str, str]:
    settings = repo.select_one(EmailSettings, {"shop": shop})
    if settings is None or not settings.cloudflare_api_token or not settings.cloudflare_account_id:
        raise ConfigurationMissing("Cloudflare credentials not configured. Add them in Email Settings.")
    return settings, settings.cloudflare_api_token, settings.cloudflare_account_id


def require_smartlead(repo: Repository, shop: str) -> str:
    settings = repo.select_one(EmailSettings, {"shop": shop})
    if settings is None or not settings.smartlead_api_key:
        raise ConfigurationMissing("Smartlead API key not configured. Add it in Email Settings.")
    return settings.smartlead_api_key


def whois_contact(settings: EmailSettings) -> Dict[str, str]:
    """Return the registrar contact, raising when any field is blank."""
    contact = {field: (getattr(settings, f"whois_{field}") or "").strip() for field in WHOIS_FIELDS}
    missing = [field for field in WHOIS_FIELDS if not contact[field]]
    if missing:
        raise ValidationFailed(f"Missing WHOIS contact info: {', '.join(missing)}. Update Email Settings first.")
    return contact


# =============================================================================
# CONNECTION TESTS
# =============================================================================

async def test_cloudflare(repo: Repository, clients: VendorClients, shop: str) -> Dict[str, Any]:
    _, api_token, account_id = require_cloudflare(repo, shop)
    result = await clients.cloudflare(api_token, account_id).verify_token()
    if not result["valid"]:
        logger.warning("[CLOUDFLARE] Token check failed for %s: %s", shop, result.get("error"))
        return {"success": False, "error": result.get("error")}
    return {"success": True, "status": result.get("status")}


async def test_smartlead(repo: Repository, clients: VendorClients, shop: str) -> Dict[str, Any]:
    api_key = require_smartlead(repo, shop)
    result = await clients.smartlead(api_key).test_connection()
    if not result["valid"]:
        logger.warning("[SMARTLEAD] Connection check failed for %s: %s", shop, result.get("error"))
        return {"success": False, "error": result.get("error")}
    return {"success": True, "campaign_count": result["campaign_count"]}


# =============================================================================
# GMAIL CONNECT
# =============================================================================

def _require_google_config(app_settings) -> None:
    missing = [
        name
        for name in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI")
        if not getattr(app_settings, name)
    ]
    if missing:
        raise ConfigurationMissing(f"Gmail forwarding not configured. Missing: {', '.join(missing)}")


def gmail_authorization_url(app_settings, shop: str) -> str:
    _require_google_config(app_settings)
    state = create_state_token(shop, app_settings.GOOGLE_CLIENT_SECRET, purpose=GMAIL_STATE_PURPOSE)
    return build_authorization_url(
        client_id=app_settings.GOOGLE_CLIENT_ID,
        redirect_uri=app_settings.GOOGLE_REDIRECT_URI,
        state=state,
    )


async def connect_gmail(
    repo: Repository,
    clients: VendorClients,
    app_settings,
    code: str,
    state: str,
) -> str:
    """Exchange the consent code and store the tokens. Returns the shop."""
    _require_google_config(app_settings)
    shop = decode_state_token(state or "", app_settings.GOOGLE_CLIENT_SECRET, purpose=GMAIL_STATE_PURPOSE)
    if not shop:
        raise ValidationFailed("Invalid or expired state")

    gmail = clients.gmail(None, None)
    tokens = await gmail.exchange_code(code, app_settings.GOOGLE_REDIRECT_URI)

    get_or_create_email_settings(repo, shop)
    values = {"gmail_access_token": tokens["access_token"]}
    if tokens.get("refresh_token"):
        values["gmail_refresh_token"] = tokens["refresh_token"]

    try:
        profile = await gmail.get_profile()
        if profile.get("emailAddress"):
            values["gmail_forward_to"] = profile["emailAddress"]
    except GmailAPIError as e:
        logger.warning("[GMAIL] Could not read mailbox profile for %s: %s", shop, e)

    repo.update(EmailSettings, values, {"shop": shop})
    logger.info("[GMAIL] Connected reply forwarding for %s", shop)
    return shop


def disconnect_gmail(repo: Repository, shop: str) -> Dict[str, Any]:
    repo.update(
        EmailSettings,
        {"gmail_access_token": None, "gmail_refresh_token": None},
        {"shop": shop},
    )
    logger.info("[GMAIL] Disconnected reply forwarding for %s", shop)
    return {"success": True}
