"""
Sentry Error Tracking
=====================

Error reporting for the API process and the ARQ worker.

Related files:
- oce_app/main.py: Initializes Sentry in create_app(), reports unhandled errors
- oce_app/workers/arq_worker.py: Initializes on worker startup, reports job failures

Environment Variables:
- SENTRY_DSN: Sentry project DSN (error tracking is off when unset)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry() -> bool:
    """Initialize the Sentry SDK once per process.

    Returns:
        True if Sentry is active, False when SENTRY_DSN is not configured.
    """
    global _initialized
    if _initialized:
        return True

    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    environment = os.environ.get("ENVIRONMENT", "development")
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,        # Capture INFO+ as breadcrumbs
                event_level=logging.ERROR,  # Send ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Shop domains are attached explicitly via `extra`
        release=os.environ.get("RELEASE_VERSION"),
    )
    _initialized = True
    logger.debug("[SENTRY] Initialized for %s environment", environment)
    return True


def capture_exception(error: BaseException, extra: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Report an exception with optional context. No-op without a DSN."""
    if not _initialized:
        return None
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(error)
