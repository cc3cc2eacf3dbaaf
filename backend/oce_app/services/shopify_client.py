"""Shopify Admin API and OAuth clients.

WHAT:
    - ShopifyAdminClient: GraphQL + REST calls for one shop's offline token
    - ShopifyAuthClient: authorization-code and session-token exchanges
    - build_install_url: the OAuth consent URL a shop is sent to

WHY:
    The app needs Admin API access for webhook registration, app metafields
    (read by the theme extension) and the SDK script tag.

REFERENCES:
    - Shopify GraphQL Admin API: https://shopify.dev/docs/api/admin-graphql
    - Token exchange: https://shopify.dev/docs/apps/build/authentication-authorization/access-tokens/token-exchange
    - Authorization code grant: https://shopify.dev/docs/apps/auth/oauth/getting-started
"""

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from oce_app.services.vendor_client import VendorAPIError, VendorClient

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-10"

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]{1,98}[a-z0-9]\.myshopify\.com$")

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
OFFLINE_TOKEN_TYPE = "urn:shopify:params:oauth:token-type:offline-access-token"


class ShopifyAPIError(VendorAPIError):
    """Custom exception for Shopify API errors."""

    vendor = "Shopify"


def normalize_shop_domain(shop_input: str) -> str:
    """Normalize shop input to the `<name>.myshopify.com` form.

    Examples:
        "mystore" -> "mystore.myshopify.com"
        "https://MyStore.myshopify.com/admin" -> "mystore.myshopify.com"
    """
    shop = (shop_input or "").strip().lower()
    shop = re.sub(r"^https?://", "", shop)
    shop = shop.split("/")[0]
    if shop and "." not in shop:
        shop = f"{shop}.myshopify.com"
    return shop


def validate_shop_domain(shop_domain: str) -> bool:
    return bool(SHOP_DOMAIN_PATTERN.match(shop_domain or ""))


def build_install_url(*, shop: str, api_key: str, scopes: List[str], redirect_uri: str, state: str) -> str:
    params = {
        "client_id": api_key,
        "scope": ",".join(scopes),  # Shopify uses comma-separated scopes
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"https://{shop}/admin/oauth/authorize?{urlencode(params)}"


class ShopifyAuthClient(VendorClient):
    """Obtains offline access tokens for a shop."""

    error_class = ShopifyAPIError
    log_tag = "[SHOPIFY_OAUTH]"

    def __init__(self, shop: str, api_key: str, api_secret: str, **kwargs):
        super().__init__(**kwargs)
        self.shop = shop
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = f"https://{shop}/admin/oauth"

    def error_message(self, status_code: int, data: Any) -> str:
        detail = None
        if isinstance(data, dict):
            detail = data.get("error_description") or data.get("error") or data.get("errors")
        return f"Shopify token request failed: {detail or f'HTTP {status_code}'}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Authorization-code grant (install callback)."""
        return await self.request("POST", "/access_token", {
            "client_id": self.api_key,
            "client_secret": self.api_secret,
            "code": code,
        })

    async def exchange_session_token(self, id_token: str) -> Dict[str, Any]:
        """Token-exchange grant: upgrade an App Bridge id_token to an offline token."""
        return await self.request("POST", "/access_token", {
            "client_id": self.api_key,
            "client_secret": self.api_secret,
            "grant_type": TOKEN_EXCHANGE_GRANT,
            "subject_token": id_token,
            "subject_token_type": ID_TOKEN_TYPE,
            "requested_token_type": OFFLINE_TOKEN_TYPE,
        })


class ShopifyAdminClient(VendorClient):
    """Admin API client for one shop.

    Usage:
        client = ShopifyAdminClient(shop="mystore.myshopify.com", access_token="shpat_xxx")
        data = await client.graphql("{ currentAppInstallation { id } }")
    """

    error_class = ShopifyAPIError
    log_tag = "[SHOPIFY]"

    def __init__(self, shop: str, access_token: str, api_version: str = DEFAULT_API_VERSION, **kwargs):
        super().__init__(**kwargs)
        self.shop = shop
        self.access_token = access_token
        self.api_version = api_version
        self.base_url = f"https://{shop}/admin/api/{api_version}"

    def auth_headers(self) -> Dict[str, str]:
        return {"X-Shopify-Access-Token": self.access_token}

    def error_message(self, status_code: int, data: Any) -> str:
        detail = None
        if isinstance(data, dict):
            detail = data.get("errors") or data.get("error")
        return f"Shopify API error: {detail or f'HTTP {status_code}'}"

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL query and return its `data` object.

        Raises:
            ShopifyAPIError: on HTTP failure or top-level GraphQL errors
        """
        body: Dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables
        result = await self.request("POST", "/graphql.json", body)
        if isinstance(result, dict) and result.get("errors"):
            errors = result["errors"]
            message = errors[0].get("message") if isinstance(errors, list) and errors else str(errors)
            raise ShopifyAPIError(f"Shopify GraphQL error: {message}", status_code=200, raw=result)
        return (result or {}).get("data") or {}

    async def list_script_tags(self) -> List[Dict[str, Any]]:
        result = await self.request("GET", "/script_tags.json")
        return (result or {}).get("script_tags") or []

    async def create_script_tag(self, src: str) -> Dict[str, Any]:
        result = await self.request("POST", "/script_tags.json", {
            "script_tag": {"event": "onload", "src": src, "display_scope": "online_store"},
        })
        return (result or {}).get("script_tag") or {}
