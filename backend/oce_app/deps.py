"""Dependency providers, settings management and tenant resolution."""

import hmac
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from .database import get_db
from .errors import ReauthorizationRequired, Unauthorized, ValidationFailed
from .models import ShopifySession
from .repository import Repository
from .security import decode_session_token, shop_from_session_payload
from .services.clients import VendorClients
from .services.shopify_auth_service import exchange_session_token, install_url_for
from .services.shopify_client import normalize_shop_domain, validate_shop_domain

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "*"
    ENVIRONMENT: str = "development"

    # Shopify app credentials (Partners dashboard)
    SHOPIFY_API_KEY: Optional[str] = None
    SHOPIFY_API_SECRET: Optional[str] = None
    SHOPIFY_APP_URL: Optional[str] = None
    SHOPIFY_API_VERSION: str = "2024-10"
    SHOPIFY_SCOPES: str = "read_all_orders,read_customers,read_products,read_script_tags,write_script_tags"

    # Gmail reply forwarding
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_REDIRECT_URI: Optional[str] = None

    # Shared secrets for the function surface and the outreach webhook
    FUNCTION_SECRET: Optional[str] = None
    SMARTLEAD_WEBHOOK_SECRET: Optional[str] = None

    # Attribution backend
    OCE_API_URL: str = "https://app.onsiteaffiliate.com"
    OCE_SDK_URL: str = "https://app.onsiteaffiliate.com/sdk/oce.min.js"

    # Webhook processing: "queue" hands work to ARQ, "inline" runs it after the ack
    REDIS_URL: str = "redis://localhost:6379/0"
    WEBHOOK_PROCESSING: str = "queue"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def shopify_scopes(self) -> List[str]:
        return [scope.strip() for scope in self.SHOPIFY_SCOPES.split(",") if scope.strip()]

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_repository(db: Session = Depends(get_db)) -> Repository:
    """Repository bound to the request's session."""
    return Repository(db)


def get_vendor_clients(settings: Settings = Depends(get_settings)) -> VendorClients:
    """Vendor client factory for the request (overridden in tests)."""
    return VendorClients(settings)


def require_shopify_config(settings: Settings) -> None:
    """Raise 503 naming every missing Shopify app variable."""
    missing = [
        name
        for name in ("SHOPIFY_API_KEY", "SHOPIFY_API_SECRET", "SHOPIFY_APP_URL")
        if not getattr(settings, name)
    ]
    if missing:
        logger.error("[SHOPIFY_OAUTH] Missing required environment variables: %s", missing)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Shopify integration not configured. Missing: {', '.join(missing)}",
        )


# =============================================================================
# AUTH HELPERS
# =============================================================================

def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    if header.lower().startswith("bearer "):
        return header[len("Bearer "):].strip() or None
    return None


def require_function_secret(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """Guard for the domain-management surface.

    Open when FUNCTION_SECRET is unset (local development). Otherwise the
    secret must arrive as the bearer token, the X-Function-Secret header or
    the `secret` query parameter.
    """
    secret = settings.FUNCTION_SECRET
    if not secret:
        return

    candidates = [
        _bearer_token(request),
        request.headers.get("X-Function-Secret"),
        request.query_params.get("secret"),
    ]
    if any(candidate and hmac.compare_digest(candidate, secret) for candidate in candidates):
        return
    raise Unauthorized("Unauthorized")


# =============================================================================
# TENANT RESOLUTION
# =============================================================================

@dataclass
class Tenant:
    """The shop a request acts for, with its offline Admin API token."""
    shop: str
    access_token: str


def _session_token_shop(token: Optional[str], settings: Settings) -> Optional[str]:
    """Return the shop from a valid App Bridge session token, or None."""
    if not token or token.count(".") != 2:
        return None
    if not settings.SHOPIFY_API_KEY or not settings.SHOPIFY_API_SECRET:
        return None
    try:
        payload = decode_session_token(
            token,
            api_key=settings.SHOPIFY_API_KEY,
            api_secret=settings.SHOPIFY_API_SECRET,
        )
    except JWTError as e:
        logger.info("[AUTH] Ignoring invalid session token: %s", e)
        return None
    return shop_from_session_payload(payload)


async def get_current_tenant(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clients: VendorClients = Depends(get_vendor_clients),
) -> Tenant:
    """Resolve the tenant for a dashboard request.

    WHAT:
        1. shop from a valid session token, else `shop` query param, else X-Shop-Domain
        2. stored offline session -> authenticated
        3. valid session token but no stored session -> token exchange, then authenticated
        4. otherwise -> ReauthorizationRequired carrying the install URL
    """
    id_token = _bearer_token(request)
    token_shop = _session_token_shop(id_token, settings)

    raw_shop = token_shop or request.query_params.get("shop") or request.headers.get("X-Shop-Domain")
    if not raw_shop:
        raise ValidationFailed("Missing shop (pass as X-Shop-Domain header or shop query param)")

    shop = normalize_shop_domain(raw_shop)
    if not validate_shop_domain(shop):
        raise ValidationFailed(f"Invalid Shopify store domain: {shop}")

    repo = Repository(db)
    session = repo.select_one(ShopifySession, {"shop": shop})
    if session is not None:
        return Tenant(shop=shop, access_token=session.access_token)

    if token_shop:
        session = await exchange_session_token(repo, clients, shop, id_token)
        return Tenant(shop=shop, access_token=session.access_token)

    require_shopify_config(settings)
    logger.info("[AUTH] No session for %s, requesting reauthorization", shop)
    raise ReauthorizationRequired(shop=shop, install_url=install_url_for(shop, settings))
