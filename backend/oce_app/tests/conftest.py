"""
Pytest configuration and shared fixtures.

WHAT:
    Test database setup, an app with overridden dependencies, a recording
    stub for every vendor API, and installed-shop fixtures.

WHY:
    Tests need an isolated database and must never reach Cloudflare,
    Smartlead, Gmail, Shopify or OCE. Every vendor client accepts an
    `httpx` transport, so one `httpx.MockTransport` covers all of them.

REFERENCES:
    - https://docs.pytest.org/en/stable/fixture.html
    - https://www.python-httpx.org/advanced/transports/#mock-transports
"""

import json
import os

# Environment must be in place before oce_app modules are imported
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("WEBHOOK_PROCESSING", "inline")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oce_app import database
from oce_app.deps import Settings, get_settings, get_vendor_clients
from oce_app.models import Base, EmailSettings, ShopifySession
from oce_app.repository import Repository
from oce_app.services.clients import VendorClients

TEST_SHOP = "test-shop.myshopify.com"
TEST_API_SECRET = "test-shopify-secret"


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def test_settings():
    """Settings with every integration configured and inline webhook work."""
    return Settings(
        ENVIRONMENT="test",
        SHOPIFY_API_KEY="test-shopify-key",
        SHOPIFY_API_SECRET=TEST_API_SECRET,
        SHOPIFY_APP_URL="https://oce-app.example.com",
        GOOGLE_CLIENT_ID="google-client-id",
        GOOGLE_CLIENT_SECRET="google-client-secret",
        GOOGLE_REDIRECT_URI="https://oce-app.example.com/auth/google/callback",
        FUNCTION_SECRET=None,
        SMARTLEAD_WEBHOOK_SECRET=None,
        WEBHOOK_PROCESSING="inline",
    )


# ============================================================================
# Vendor stub
# ============================================================================

class VendorStub:
    """Route table for `httpx.MockTransport`.

    Routes match on method plus a URL substring, first match wins. A route's
    payload may be a callable taking the request. Unrouted requests get a 404
    so a missing stub shows up as a vendor error rather than a hang.
    """

    def __init__(self):
        self.routes = []
        self.requests = []

    def add(self, method, url_fragment, payload=None, status_code=200):
        self.routes.append((method, url_fragment, payload, status_code))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, fragment, payload, status_code in self.routes:
            if request.method == method and fragment in str(request.url):
                if callable(payload):
                    payload = payload(request)
                if isinstance(payload, httpx.Response):
                    return payload
                return httpx.Response(status_code, json=payload)
        return httpx.Response(404, json={"error": f"unrouted {request.method} {request.url}"})

    def calls(self, method, url_fragment):
        return [r for r in self.requests if r.method == method and url_fragment in str(r.url)]

    @staticmethod
    def body(request: httpx.Request):
        return json.loads(request.content or b"null")


@pytest.fixture
def vendors():
    return VendorStub()


@pytest.fixture
def clients(test_settings, vendors):
    return VendorClients(test_settings, transport=httpx.MockTransport(vendors.handler))


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def test_db_engine(monkeypatch):
    """In-memory SQLite shared across threads, one per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    # Background tasks and workers open their own sessions through SessionLocal
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=engine, autoflush=False, autocommit=False))

    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repo(test_db_session):
    return Repository(test_db_session)


# ============================================================================
# App & client
# ============================================================================

@pytest.fixture
def app(test_db_engine, test_settings, clients):
    """FastAPI app with database, settings and vendor clients overridden."""
    from oce_app.database import get_db
    from oce_app.main import create_app

    get_settings.cache_clear()
    application = create_app()

    def override_get_db():
        db = database.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_vendor_clients] = lambda: clients
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def shop_headers():
    return {"X-Shop-Domain": TEST_SHOP}


# ============================================================================
# Model fixtures
# ============================================================================

@pytest.fixture
def installed_shop(repo):
    """A shop with a stored offline session."""
    repo.insert(ShopifySession, {
        "id": f"offline_{TEST_SHOP}",
        "shop": TEST_SHOP,
        "access_token": "shpat_test_token",
        "scope": "read_all_orders",
        "is_online": False,
    })
    return TEST_SHOP


@pytest.fixture
def cloudflare_settings(repo, installed_shop):
    """Email settings with Cloudflare credentials and a complete WHOIS contact."""
    return repo.insert(EmailSettings, {
        "shop": installed_shop,
        "cloudflare_account_id": "cf-account-1",
        "cloudflare_api_token": "cf-token-abcdef123456",
        "smartlead_api_key": "sl-key-abcdef123456",
        "whois_first_name": "Ada",
        "whois_last_name": "Lovelace",
        "whois_address": "1 Main St",
        "whois_city": "Austin",
        "whois_state": "TX",
        "whois_zip": "78701",
        "whois_country": "US",
        "whois_phone": "+1.5125550100",
        "whois_email": "ada@example.com",
    })
