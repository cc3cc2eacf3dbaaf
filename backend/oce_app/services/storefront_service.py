"""Storefront wiring for the OCE SDK.

WHAT:
    - sync_app_metafields: writes `oce.api_key` / `oce.sdk_enabled` app metafields
    - ensure_script_tag: injects the OCE SDK script tag when enabled
WHY:
    The theme app extension reads app.metafields.oce.* to load the SDK; shops
    on vintage themes rely on the script tag instead.
REFERENCES:
    - https://shopify.dev/docs/api/admin-graphql/2024-10/mutations/metafieldsSet
    - https://shopify.dev/docs/api/admin-rest/2024-10/resources/scripttag
"""

import logging
from typing import Any, Dict, Optional

from oce_app.models import OceSettings
from oce_app.services.shopify_client import ShopifyAdminClient, ShopifyAPIError

logger = logging.getLogger(__name__)

DEFAULT_SDK_URL = "https://app.onsiteaffiliate.com/sdk/oce.min.js"

APP_INSTALLATION_QUERY = "{ currentAppInstallation { id } }"

METAFIELDS_SET_MUTATION = """
mutation MetafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id namespace key }
    userErrors { field message }
  }
}
"""


async def sync_app_metafields(client: ShopifyAdminClient, settings: Optional[OceSettings]) -> Dict[str, Any]:
    """Mirror the shop's OCE settings into app-owned metafields.

    Returns:
        {"success": True} or {"success": False, "error": <message>}
    """
    if settings is None:
        logger.error("[OCE] syncAppMetafields: no settings for %s", client.shop)
        return {"success": False, "error": "No settings found"}

    try:
        data = await client.graphql(APP_INSTALLATION_QUERY)
    except ShopifyAPIError as e:
        logger.error("[OCE] Failed to fetch app installation ID for %s: %s", client.shop, e)
        return {"success": False, "error": "Could not reach Shopify API"}

    owner_id = (data.get("currentAppInstallation") or {}).get("id")
    if not owner_id:
        logger.error("[OCE] No app installation ID returned for %s", client.shop)
        return {"success": False, "error": "Could not get app installation ID"}

    metafields = [
        {
            "namespace": "oce",
            "key": "api_key",
            "type": "single_line_text_field",
            "value": settings.api_key or "",
            "ownerId": owner_id,
        },
        {
            "namespace": "oce",
            "key": "sdk_enabled",
            "type": "single_line_text_field",
            "value": "true" if settings.sdk_enabled else "false",
            "ownerId": owner_id,
        },
    ]

    try:
        data = await client.graphql(METAFIELDS_SET_MUTATION, {"metafields": metafields})
    except ShopifyAPIError as e:
        logger.error("[OCE] Metafield sync failed for %s: %s", client.shop, e)
        return {"success": False, "error": e.message}

    user_errors = (data.get("metafieldsSet") or {}).get("userErrors") or []
    if user_errors:
        logger.error("[OCE] Metafield sync errors for %s: %s", client.shop, user_errors)
        return {"success": False, "error": user_errors[0].get("message")}

    logger.info("[OCE] App metafields synced for %s", client.shop)
    return {"success": True}


async def ensure_script_tag(
    client: ShopifyAdminClient,
    settings: Optional[OceSettings],
    sdk_url: str = DEFAULT_SDK_URL,
) -> Optional[Dict[str, Any]]:
    """Create the SDK script tag unless one already points at the SDK.

    Returns the created script tag, or None when nothing was created.
    """
    if settings is None or not settings.sdk_enabled or not settings.api_key:
        return None

    existing = await client.list_script_tags()
    if any(sdk_url in (tag.get("src") or "") for tag in existing):
        return None

    tag = await client.create_script_tag(f"{sdk_url}?key={settings.api_key}")
    logger.info("[OCE] Script tag injected for %s", client.shop)
    return tag
