"""ARQ worker for webhook follow-up work.

WHAT:
    - process_order_created: relays a Shopify order to OCE (order_sync_service)
    - forward_inbound_reply: copies a stored reply into Gmail (reply_service)

WHY:
    Webhook receivers acknowledge first and hand the payload here, so vendor
    latency never holds the HTTP response. The same runners are used
    in-process by `enqueue_or_run` when the queue is unavailable.

USAGE:
    arq oce_app.workers.arq_worker.WorkerSettings

REFERENCES:
    - https://arq-docs.helpmanual.io/
    - oce_app/workers/arq_enqueue.py
"""

from __future__ import annotations

import logging
import platform
from datetime import datetime, timezone
from typing import Any, Dict

from oce_app.database import get_sync_session
from oce_app.deps import get_settings
from oce_app.repository import Repository
from oce_app.services.clients import VendorClients
from oce_app.services.order_sync_service import handle_order_created
from oce_app.services.reply_service import forward_reply
from oce_app.telemetry import capture_exception, init_sentry
from oce_app.workers.arq_enqueue import QUEUE_NAME, get_redis_settings

logger = logging.getLogger(__name__)


# =============================================================================
# RUNNERS (shared by ARQ jobs and the in-process fallback)
# =============================================================================

async def run_order_created(clients: VendorClients, shop: str, order: Dict[str, Any]) -> Dict[str, Any]:
    with get_sync_session() as db:
        return await handle_order_created(Repository(db), clients, shop, order)


async def run_forward_reply(clients: VendorClients, conversation_id: str) -> Dict[str, Any]:
    with get_sync_session() as db:
        return await forward_reply(Repository(db), clients, conversation_id)


# =============================================================================
# JOBS
# =============================================================================

async def process_order_created(ctx: Dict, shop: str, order: Dict[str, Any]) -> Dict[str, Any]:
    """Sync one order. Vendor failures are recorded on the OrderSync row."""
    try:
        result = await run_order_created(ctx["clients"], shop, order)
    except Exception as e:
        logger.exception("[ARQ] process_order_created failed for %s", shop)
        capture_exception(e, extra={"shop": shop, "order_id": order.get("id")})
        raise
    logger.info("[ARQ] Order %s for %s: %s", order.get("id"), shop, result.get("status"))
    return result


async def forward_inbound_reply(ctx: Dict, conversation_id: str) -> Dict[str, Any]:
    try:
        return await run_forward_reply(ctx["clients"], conversation_id)
    except Exception as e:
        logger.exception("[ARQ] forward_inbound_reply failed for %s", conversation_id)
        capture_exception(e, extra={"conversation_id": conversation_id})
        raise


# =============================================================================
# LIFECYCLE
# =============================================================================

async def startup(ctx: Dict) -> None:
    """Worker startup - build vendor clients and log config."""
    init_sentry()
    ctx["clients"] = VendorClients(get_settings())
    ctx["startup_time"] = datetime.now(timezone.utc)
    ctx["jobs_processed"] = 0

    logger.info("=" * 60)
    logger.info("[ARQ] Worker starting up")
    logger.info("[ARQ] Python: %s", platform.python_version())
    logger.info("[ARQ] Queue: %s", QUEUE_NAME)
    logger.info("=" * 60)


async def shutdown(ctx: Dict) -> None:
    uptime = datetime.now(timezone.utc) - ctx.get("startup_time", datetime.now(timezone.utc))
    logger.info("[ARQ] Worker shutting down (jobs=%s, uptime=%s)", ctx.get("jobs_processed", 0), uptime)


async def on_job_end(ctx: Dict) -> None:
    ctx["jobs_processed"] = ctx.get("jobs_processed", 0) + 1


# =============================================================================
# WORKER SETTINGS
# =============================================================================

class WorkerSettings:
    """ARQ worker configuration.

    Order jobs are not retried by ARQ: a vendor failure is already recorded
    as a failed OrderSync and Shopify's own re-delivery retries the order.
    """

    functions = [process_order_created, forward_inbound_reply]

    on_startup = startup
    on_shutdown = shutdown
    after_job_end = on_job_end

    redis_settings = get_redis_settings(get_settings().REDIS_URL)

    max_jobs = 10
    job_timeout = 120
    keep_result = 3600
    retry_jobs = False
    health_check_interval = 30

    queue_name = QUEUE_NAME
