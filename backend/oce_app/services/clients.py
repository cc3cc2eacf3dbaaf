"""Vendor client factory.

WHAT:
    Builds per-tenant vendor clients from app settings plus the tenant's
    stored credentials, sharing one optional `httpx` transport.

WHY:
    Use-cases receive this factory as an explicit dependency instead of
    constructing clients from globals. Tests inject `httpx.MockTransport`
    through it; ARQ jobs build their own at worker startup.
"""

from typing import Optional

import httpx

from oce_app.services.cloudflare_client import CloudflareClient
from oce_app.services.gmail_client import GmailClient
from oce_app.services.oce_client import OceClient
from oce_app.services.shopify_client import ShopifyAdminClient, ShopifyAuthClient
from oce_app.services.smartlead_client import SmartleadClient


class VendorClients:
    def __init__(self, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def oce(self, api_key: str) -> OceClient:
        return OceClient(api_key, base_url=self.settings.OCE_API_URL, transport=self.transport)

    def cloudflare(self, api_token: str, account_id: str) -> CloudflareClient:
        return CloudflareClient(api_token, account_id, transport=self.transport)

    def smartlead(self, api_key: str) -> SmartleadClient:
        return SmartleadClient(api_key, transport=self.transport)

    def gmail(self, access_token: Optional[str], refresh_token: Optional[str]) -> GmailClient:
        return GmailClient(
            access_token=access_token,
            refresh_token=refresh_token,
            client_id=self.settings.GOOGLE_CLIENT_ID,
            client_secret=self.settings.GOOGLE_CLIENT_SECRET,
            transport=self.transport,
        )

    def shopify_admin(self, shop: str, access_token: str) -> ShopifyAdminClient:
        return ShopifyAdminClient(
            shop,
            access_token,
            api_version=self.settings.SHOPIFY_API_VERSION,
            transport=self.transport,
        )

    def shopify_auth(self, shop: str) -> ShopifyAuthClient:
        return ShopifyAuthClient(
            shop,
            self.settings.SHOPIFY_API_KEY or "",
            self.settings.SHOPIFY_API_SECRET or "",
            transport=self.transport,
        )
