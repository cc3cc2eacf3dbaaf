"""FastAPI application entrypoint.

Configures CORS, error rendering and routers, and exposes a healthcheck.
Every failure is rendered as {"success": false, "error": <message>}.
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings  # noqa: E402
from .errors import AppError, ReauthorizationRequired  # noqa: E402
from .routers import accounts as accounts_router  # noqa: E402
from .routers import campaigns as campaigns_router  # noqa: E402
from .routers import domains as domains_router  # noqa: E402
from .routers import email_settings as email_settings_router  # noqa: E402
from .routers import google_oauth as google_oauth_router  # noqa: E402
from .routers import inbox as inbox_router  # noqa: E402
from .routers import oce as oce_router  # noqa: E402
from .routers import outreach_webhooks as outreach_webhooks_router  # noqa: E402
from .routers import settings as settings_router  # noqa: E402
from .routers import shopify_oauth as shopify_oauth_router  # noqa: E402
from .routers import shopify_webhooks as shopify_webhooks_router  # noqa: E402
from .services.vendor_client import VendorAPIError  # noqa: E402
from .telemetry import capture_exception, init_sentry  # noqa: E402


def _error(status_code: int, message: str, headers=None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ReauthorizationRequired)
    async def reauthorization_handler(request: Request, exc: ReauthorizationRequired):
        return _error(
            exc.status_code,
            exc.message,
            headers={
                "X-Shopify-API-Request-Failure-Reauthorize": "1",
                "X-Shopify-API-Request-Failure-Reauthorize-Url": exc.install_url,
            },
            reauthorize_url=exc.install_url,
        )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(VendorAPIError)
    async def vendor_error_handler(request: Request, exc: VendorAPIError):
        logger.error("[%s] %s %s failed: %s", exc.vendor.upper(), request.method, request.url.path, exc.message)
        return _error(500, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("[API] Unhandled error on %s %s", request.method, request.url.path)
        capture_exception(exc, extra={"path": request.url.path})
        if get_settings().is_production:
            return _error(500, "Internal server error")
        return _error(500, "Internal server error", stack=traceback.format_exc())


def create_app() -> FastAPI:
    init_sentry()
    settings = get_settings()

    app = FastAPI(
        title="OCE Shopify Backend",
        version="1.0.0",
        description="Commission attribution and cold-email outreach for Shopify merchants.",
    )

    # CORS: the embedded admin and the storefront SDK call from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(shopify_oauth_router.router)
    app.include_router(google_oauth_router.router)
    app.include_router(shopify_webhooks_router.router)
    app.include_router(outreach_webhooks_router.router)
    app.include_router(settings_router.router)
    app.include_router(email_settings_router.router)
    app.include_router(domains_router.router)
    app.include_router(accounts_router.router)
    app.include_router(campaigns_router.router)
    app.include_router(inbox_router.router)
    app.include_router(oce_router.router)

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok"}

    return app


app = create_app()
