"""Relay Shopify orders to OCE for attribution.

WHAT:
    handle_order_created(shop, order) ->
        {"status": "skipped", "reason": "not_configured" | "already_processed"}
        {"status": "sent", "oce_order_id": ...}
        {"status": "failed", "error": ...}

WHY:
    Shopify re-delivers webhooks. A row already marked "sent" is the only
    guard against submitting the same order (and commission) twice.

REFERENCES:
    - https://shopify.dev/docs/api/admin-rest/2024-10/resources/webhook#event-topics-orders-create
    - The storefront SDK writes exposure ids to cart attributes, which
      Shopify copies into the order's note_attributes.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from oce_app.models import OceSettings, OrderSync, SyncStatusEnum
from oce_app.repository import Repository
from oce_app.services.clients import VendorClients
from oce_app.services.oce_client import OceAPIError

logger = logging.getLogger(__name__)

EXPOSURE_LIST_KEYS = ("_oce_exposure_ids", "oce_exposure_ids")
EXPOSURE_SINGLE_KEYS = ("_oce_exposure_id", "oce_exposure_id")


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _clean_items(items: Iterable[Any]) -> List[str]:
    cleaned = (str(item).strip() for item in items if item is not None)
    return [item for item in cleaned if item]


def _parse_exposure_list(value: Any) -> List[str]:
    """JSON array, else comma-separated, else the raw trimmed value."""
    if isinstance(value, list):
        return _clean_items(value)

    raw = str(value or "").strip()
    if not raw:
        return []

    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return _clean_items(parsed)

    parts = [part.strip() for part in raw.split(",") if part.strip()]
    return parts or [raw]


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    unique = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            unique.append(value)
    return unique


def extract_exposure_ids(order: Dict[str, Any]) -> List[str]:
    """Collect exposure ids from note attributes and line-item properties."""
    found: List[str] = []

    for attribute in order.get("note_attributes") or []:
        name = attribute.get("name")
        if name in EXPOSURE_LIST_KEYS:
            found.extend(_parse_exposure_list(attribute.get("value")))
        elif name in EXPOSURE_SINGLE_KEYS:
            found.append(str(attribute.get("value") or "").strip())

    for item in order.get("line_items") or []:
        for prop in item.get("properties") or []:
            if prop.get("name") in EXPOSURE_SINGLE_KEYS:
                found.append(str(prop.get("value") or "").strip())

    return _dedupe(found)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _to_float(value: Any) -> Optional[float]:
    amount = _to_decimal(value)
    return float(amount) if amount is not None else None


def build_line_items(order: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {
            "sku": item.get("sku") or "",
            "product_id": str(item.get("product_id")) if item.get("product_id") is not None else None,
            "variant_id": str(item.get("variant_id")) if item.get("variant_id") is not None else None,
            "title": item.get("title"),
            "quantity": item.get("quantity"),
            "price": _to_float(item.get("price")),
        }
        for item in order.get("line_items") or []
    ]


# =============================================================================
# USE-CASE
# =============================================================================

async def handle_order_created(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    order: Dict[str, Any],
) -> Dict[str, Any]:
    shopify_order_id = str(order.get("id"))
    logger.info("[ORDER_SYNC] Processing order %s for %s", shopify_order_id, shop)

    settings = repo.select_one(OceSettings, {"shop": shop})
    if settings is None or not settings.api_key or not settings.webhook_enabled:
        logger.info("[ORDER_SYNC] Skipping order for %s: webhook disabled or no API key", shop)
        return {"status": "skipped", "reason": "not_configured"}

    key = {"shop": shop, "shopify_order_id": shopify_order_id}
    existing = repo.select_one(OrderSync, key)
    if existing is not None and existing.status == SyncStatusEnum.sent:
        logger.info("[ORDER_SYNC] Order %s already processed", shopify_order_id)
        return {"status": "skipped", "reason": "already_processed"}

    total_amount = _to_decimal(order.get("total_price"))
    exposure_ids = extract_exposure_ids(order)
    sync = repo.upsert(OrderSync, {
        **key,
        "order_number": str(order["order_number"]) if order.get("order_number") is not None else None,
        "status": SyncStatusEnum.pending,
        "total_amount": total_amount,
        "currency": order.get("currency"),
        "exposure_ids": exposure_ids,
        "error_message": None,
    }, conflict_keys=("shop", "shopify_order_id"))

    customer_email = order.get("email") or (order.get("customer") or {}).get("email")
    try:
        result = await clients.oce(settings.api_key).send_order(
            order_id=shopify_order_id,
            exposure_ids=exposure_ids,
            line_items=build_line_items(order),
            total_amount=float(total_amount) if total_amount is not None else None,
            currency=order.get("currency"),
            customer_email=customer_email,
        )
    except OceAPIError as e:
        repo.update(OrderSync, {"status": SyncStatusEnum.failed, "error_message": e.message}, {"id": sync.id})
        logger.error("[ORDER_SYNC] Failed to send order %s: %s", shopify_order_id, e.message)
        return {"status": "failed", "error": e.message}

    result = result or {}
    repo.update(OrderSync, {
        "status": SyncStatusEnum.sent,
        "oce_order_id": str(result["order_id"]) if result.get("order_id") is not None else None,
        "commission": _to_decimal(result.get("commission")),
    }, {"id": sync.id})

    logger.info("[ORDER_SYNC] Order %s sent (%d exposure ids)", shopify_order_id, len(exposure_ids))
    return {"status": "sent", "oce_order_id": result.get("order_id")}
