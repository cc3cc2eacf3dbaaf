"""Shopify webhooks: orders, uninstall and mandatory privacy topics.

WHAT:
    1. orders/create          -> order sync to OCE, after the ack
    2. app/uninstalled        -> purge every row for the shop
    3. customers/data_request -> acknowledge (no customer PII is stored)
    4. customers/redact       -> acknowledge (no customer PII is stored)
    5. shop/redact            -> purge every row for the shop

WHY:
    Shopify retries on non-2xx. Once the signature checks out every topic
    answers 200; processing failures are recorded, not returned.

REFERENCES:
    - https://shopify.dev/docs/apps/build/webhooks/subscribe/https#step-5-verify-the-webhook
    - https://shopify.dev/docs/apps/build/compliance/privacy-law-compliance
"""

import json
import logging
from typing import Any, Dict, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from oce_app.deps import Settings, get_repository, get_settings, get_vendor_clients
from oce_app.repository import Repository
from oce_app.security import verify_webhook_hmac
from oce_app.services.clients import VendorClients
from oce_app.services.shopify_client import normalize_shop_domain
from oce_app.workers.arq_enqueue import enqueue_or_run
from oce_app.workers.arq_worker import run_order_created

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Shopify Webhooks"])


# =============================================================================
# HMAC VERIFICATION
# =============================================================================

async def verified_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Tuple[str, Dict[str, Any]]:
    """Dependency that verifies the signature and returns (shop, payload).

    Raises:
        HTTPException: 401 if HMAC verification fails, 400 for a bad body
    """
    body = await request.body()
    hmac_header = request.headers.get("X-Shopify-Hmac-SHA256")

    if not verify_webhook_hmac(body, hmac_header, settings.SHOPIFY_API_SECRET):
        logger.warning("[SHOPIFY_WEBHOOK] %s - Invalid signature", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = json.loads(body or b"{}")
    except ValueError as e:
        logger.error("[SHOPIFY_WEBHOOK] Failed to parse JSON: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    shop = request.headers.get("X-Shopify-Shop-Domain") or payload.get("shop_domain") or payload.get("myshopify_domain")
    if not shop:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing shop domain")
    return normalize_shop_domain(shop), payload


# =============================================================================
# WEBHOOK ENDPOINTS
# =============================================================================

@router.post("/orders/create")
async def handle_order_created(
    background_tasks: BackgroundTasks,
    webhook: Tuple[str, Dict[str, Any]] = Depends(verified_webhook),
    settings: Settings = Depends(get_settings),
    clients: VendorClients = Depends(get_vendor_clients),
):
    """Acknowledge, then sync the order to OCE outside the request."""
    shop, order = webhook
    mode = await enqueue_or_run(
        settings,
        background_tasks,
        "process_order_created",
        (shop, order),
        run_order_created,
        clients,
        shop,
        order,
    )
    logger.info("[SHOPIFY_WEBHOOK] orders/create %s for %s (%s)", order.get("id"), shop, mode)
    return {"success": True, "status": "queued"}


@router.post("/app/uninstalled")
def handle_app_uninstalled(
    webhook: Tuple[str, Dict[str, Any]] = Depends(verified_webhook),
    repo: Repository = Depends(get_repository),
):
    shop, _ = webhook
    counts = repo.purge_tenant(shop)
    logger.info("[SHOPIFY_WEBHOOK] app/uninstalled - purged %s", shop)
    return {"success": True, "deleted": counts}


@router.post("/customers/data_request")
def handle_customer_data_request(webhook: Tuple[str, Dict[str, Any]] = Depends(verified_webhook)):
    """We keep no customer records beyond order ids and totals; acknowledge."""
    shop, payload = webhook
    logger.info(
        "[SHOPIFY_WEBHOOK] customers/data_request for %s (customer %s)",
        shop, (payload.get("customer") or {}).get("id"),
    )
    return {"success": True}


@router.post("/customers/redact")
def handle_customer_redact(webhook: Tuple[str, Dict[str, Any]] = Depends(verified_webhook)):
    shop, payload = webhook
    logger.info(
        "[SHOPIFY_WEBHOOK] customers/redact for %s (customer %s)",
        shop, (payload.get("customer") or {}).get("id"),
    )
    return {"success": True}


@router.post("/shop/redact")
def handle_shop_redact(
    webhook: Tuple[str, Dict[str, Any]] = Depends(verified_webhook),
    repo: Repository = Depends(get_repository),
):
    shop, _ = webhook
    repo.purge_tenant(shop)
    logger.info("[SHOPIFY_WEBHOOK] shop/redact - purged %s", shop)
    return {"success": True}
