"""
Telemetry Module
================

Error tracking for the OCE backend.

Usage:
    from oce_app.telemetry import init_sentry, capture_exception

    init_sentry()
    capture_exception(exc, extra={"shop": shop})
"""

from oce_app.telemetry.sentry import capture_exception, init_sentry

__all__ = [
    "init_sentry",
    "capture_exception",
]
