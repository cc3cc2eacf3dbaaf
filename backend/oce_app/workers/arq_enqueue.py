"""ARQ job enqueueing utilities.

WHAT:
    Hands webhook follow-up work (order sync, reply forwarding) to the ARQ
    worker, or runs it in-process after the response when queueing is off
    or Redis is unreachable.

WHY:
    Webhook receivers must acknowledge quickly and always acknowledge.
    Losing Redis degrades to in-process work instead of a failed webhook.

USAGE:
    from oce_app.workers.arq_enqueue import enqueue_or_run

    mode = await enqueue_or_run(
        settings, background_tasks,
        "process_order_created", (shop, order),
        run_order_created, clients, shop, order,
    )
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence
from urllib.parse import urlparse

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from fastapi import BackgroundTasks
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

QUEUE_NAME = "arq:queue"

# Global pool reference
_arq_pool: Optional[ArqRedis] = None


def get_redis_settings(redis_url: str) -> RedisSettings:
    """Translate a redis:// or rediss:// URL into ARQ settings."""
    parsed = urlparse(redis_url)
    use_ssl = parsed.scheme == "rediss"
    database = int(parsed.path.lstrip("/")) if parsed.path and parsed.path != "/" else 0

    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        database=database,
        ssl=use_ssl,
        ssl_cert_reqs="none" if use_ssl else "required",
    )


async def get_arq_pool(redis_url: str) -> ArqRedis:
    """Get or create the ARQ Redis pool."""
    global _arq_pool
    if _arq_pool is None:
        logger.info("[ARQ] Creating new Redis pool...")
        _arq_pool = await create_pool(get_redis_settings(redis_url))
    return _arq_pool


async def reset_arq_pool() -> None:
    """Drop the pool so the next enqueue reconnects; close errors are logged."""
    global _arq_pool
    if _arq_pool is None:
        return
    pool, _arq_pool = _arq_pool, None
    try:
        await pool.close()
    except (RedisError, OSError) as e:
        logger.warning("[ARQ] Closing Redis pool failed: %s", e)
    logger.info("[ARQ] Redis pool reset")


async def enqueue_job(redis_url: str, job_name: str, *args: Any) -> Dict[str, Any]:
    pool = await get_arq_pool(redis_url)
    job = await pool.enqueue_job(job_name, *args, _queue_name=QUEUE_NAME)
    if job:
        logger.info("[ARQ] Enqueued %s as job %s", job_name, job.job_id)
        return {"job_id": job.job_id, "status": "enqueued"}
    logger.warning("[ARQ] Job %s might already exist", job_name)
    return {"job_id": None, "status": "skipped_or_duplicate"}


async def enqueue_or_run(
    settings,
    background_tasks: BackgroundTasks,
    job_name: str,
    job_args: Sequence[Any],
    fallback: Callable[..., Awaitable[Any]],
    *fallback_args: Any,
) -> str:
    """Enqueue `job_name`, or schedule `fallback` to run after the response.

    Returns "queued" or "background".
    """
    if settings.WEBHOOK_PROCESSING == "queue":
        try:
            await enqueue_job(settings.REDIS_URL, job_name, *job_args)
            return "queued"
        except (RedisError, OSError) as e:
            logger.warning("[ARQ] Enqueue of %s failed, running in-process: %s", job_name, e)
            await reset_arq_pool()

    background_tasks.add_task(fallback, *fallback_args)
    return "background"
