"""Attribution settings use-cases.

WHAT:
    - get_settings_payload: lazily-created settings with the API key masked
    - update_settings: whitelisted patch, then best-effort metafield sync
    - save_api_key: stores the OCE key, then metafields + script tag
    - integration_status: API, SDK and webhook health for the dashboard

WHY:
    The storefront reads its configuration from app metafields, so every
    change here is mirrored to Shopify. Mirroring never fails the save.
"""

import logging
from typing import Any, Dict, Mapping

from oce_app.errors import ValidationFailed
from oce_app.models import OceSettings, OrderSync, SyncStatusEnum
from oce_app.repository import Repository
from oce_app.security import mask_secret
from oce_app.services.clients import VendorClients
from oce_app.services.shopify_client import ShopifyAPIError
from oce_app.services.storefront_service import ensure_script_tag, sync_app_metafields

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "sdk_enabled",
    "webhook_enabled",
    "attribution_model",
    "attribution_window",
    "commission_rate",
    "track_impressions",
    "track_clicks",
    "track_watch_progress",
    "min_watch_percent",
)

RECENT_SYNC_LIMIT = 10
RECENT_ORDERS_SHOWN = 5


def get_or_create_settings(repo: Repository, shop: str) -> OceSettings:
    return repo.get_or_create(OceSettings, {"shop": shop})


def serialize_settings(settings: OceSettings) -> Dict[str, Any]:
    return {
        "shop": settings.shop,
        "api_key": mask_secret(settings.api_key),
        "has_api_key": bool(settings.api_key),
        **{field: getattr(settings, field) for field in UPDATABLE_FIELDS},
        "updated_at": settings.updated_at.isoformat() if settings.updated_at else None,
    }


def get_settings_payload(repo: Repository, shop: str) -> Dict[str, Any]:
    return serialize_settings(get_or_create_settings(repo, shop))


async def update_settings(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    access_token: str,
    patch: Mapping[str, Any],
) -> Dict[str, Any]:
    """Apply whitelisted fields only; unknown keys are ignored."""
    get_or_create_settings(repo, shop)
    values = {key: value for key, value in patch.items() if key in UPDATABLE_FIELDS and value is not None}
    settings = repo.update(OceSettings, values, {"shop": shop}) if values else repo.select_one(OceSettings, {"shop": shop})
    logger.info("[OCE] Settings updated for %s: %s", shop, sorted(values))

    metafields = await sync_app_metafields(clients.shopify_admin(shop, access_token), settings)
    return {**serialize_settings(settings), "metafields_synced": metafields.get("success", False)}


async def save_api_key(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    access_token: str,
    api_key: str,
) -> Dict[str, Any]:
    api_key = (api_key or "").strip()
    if not api_key:
        raise ValidationFailed("API key is required")

    get_or_create_settings(repo, shop)
    settings = repo.update(OceSettings, {"api_key": api_key}, {"shop": shop})
    logger.info("[OCE] API key saved for %s", shop)

    admin = clients.shopify_admin(shop, access_token)
    await sync_app_metafields(admin, settings)
    try:
        await ensure_script_tag(admin, settings, clients.settings.OCE_SDK_URL)
    except ShopifyAPIError as e:
        logger.warning("[OCE] Script tag setup failed for %s: %s", shop, e)

    return {"success": True, "message": "API key saved successfully."}


def _sync_summary(sync: OrderSync) -> Dict[str, Any]:
    return {
        "shopify_order_id": sync.shopify_order_id,
        "order_number": sync.order_number,
        "status": sync.status.value if sync.status else None,
        "total_amount": float(sync.total_amount) if sync.total_amount is not None else None,
        "currency": sync.currency,
        "commission": float(sync.commission) if sync.commission is not None else None,
        "error_message": sync.error_message,
        "created_at": sync.created_at.isoformat() if sync.created_at else None,
    }


async def integration_status(repo: Repository, clients: VendorClients, shop: str) -> Dict[str, Any]:
    """Summarize integration health.

    WHAT:
        - no API key: everything inactive, overall "not_configured"
        - otherwise validate the key and inspect the last order syncs
    """
    settings = get_or_create_settings(repo, shop)

    if not settings.api_key:
        return {
            "overall": "not_configured",
            "sdk": {"status": "inactive", "message": "API key required"},
            "webhook": {"status": "inactive", "message": "API key required"},
            "api_connection": {"status": "inactive", "message": "No API key set"},
            "recent_orders": [],
        }

    validation = await clients.oce(settings.api_key).validate_api_key()
    recent = repo.select_many(OrderSync, {"shop": shop}, order_by="-created_at", limit=RECENT_SYNC_LIMIT)
    failed = sum(1 for sync in recent if sync.status == SyncStatusEnum.failed)

    if validation["valid"]:
        api_connection = {"status": "connected", "message": "Connected to OCE"}
    else:
        api_connection = {"status": "error", "message": f"Connection failed: {validation.get('error')}"}

    if settings.webhook_enabled:
        webhook = {
            "status": "active",
            "message": f"{len(recent)} recent orders processed, {failed} failed",
        }
    else:
        webhook = {"status": "disabled", "message": "Order webhook disabled"}

    return {
        "overall": "healthy" if validation["valid"] else "error",
        "sdk": {
            "status": "active" if settings.sdk_enabled else "disabled",
            "message": "SDK enabled on storefront" if settings.sdk_enabled else "SDK disabled",
        },
        "webhook": webhook,
        "api_connection": api_connection,
        "recent_orders": [_sync_summary(sync) for sync in recent[:RECENT_ORDERS_SHOWN]],
    }
