"""OCE (Onsite Commission Engine) REST client.

WHAT: Exposure events, order attribution, video assets and reports
WHY: OCE attributes storefront orders to creator video exposures and computes
     commissions; this app relays Shopify orders and dashboard requests to it
REFERENCES: https://app.onsiteaffiliate.com (API key in X-API-Key header)
"""

import logging
from http import HTTPStatus
from typing import Any, Dict, List, Optional

from oce_app.services.vendor_client import VendorAPIError, VendorClient

logger = logging.getLogger(__name__)

OCE_BASE_URL = "https://app.onsiteaffiliate.com"


class OceAPIError(VendorAPIError):
    vendor = "OCE"


class OceClient(VendorClient):
    error_class = OceAPIError
    log_tag = "[OCE]"

    def __init__(self, api_key: str, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = (base_url or OCE_BASE_URL).rstrip("/")

    def auth_headers(self) -> Dict[str, str]:
        return {"X-API-Key": self.api_key}

    def error_message(self, status_code: int, data: Any) -> str:
        try:
            reason = HTTPStatus(status_code).phrase
        except ValueError:
            reason = ""
        return f"OCE API error: {status_code} {reason}".rstrip()

    # ----- exposures -----------------------------------------------------

    async def send_exposure_event(
        self,
        *,
        exposure_id: str,
        asset_id: Optional[str] = None,
        sku: Optional[str] = None,
        session_id: Optional[str] = None,
        events: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        return await self.request("POST", "/api/v1/events-exposure", {
            "exposure_id": exposure_id,
            "asset_id": asset_id,
            "sku": sku,
            "session_id": session_id,
            "events": events or [],
        })

    # ----- orders --------------------------------------------------------

    async def send_order(
        self,
        *,
        order_id: str,
        exposure_ids: List[str],
        line_items: List[Dict[str, Any]],
        total_amount: Any,
        currency: Optional[str],
        customer_email: Optional[str],
    ) -> Dict[str, Any]:
        """Submit an order for attribution. Returns OCE's order_id/commission."""
        return await self.request("POST", "/api/v1/orders", {
            "order_id": order_id,
            "exposure_ids": exposure_ids,
            "line_items": [
                {
                    "sku": item.get("sku"),
                    "product_id": item.get("product_id"),
                    "variant_id": item.get("variant_id"),
                    "title": item.get("title"),
                    "quantity": item.get("quantity"),
                    "price": item.get("price"),
                }
                for item in line_items
            ],
            "total_amount": total_amount,
            "currency": currency,
            "customer_email": customer_email,
        })

    # ----- assets --------------------------------------------------------

    async def register_video_asset(
        self,
        *,
        title: str,
        creator_id: str,
        video_url: str,
        skus: Optional[List[str]] = None,
        platform: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.request("POST", "/api/v1/assets", {
            "title": title,
            "creator_id": creator_id,
            "video_url": video_url,
            "skus": skus or [],
            "platform": platform,
        })

    async def list_video_assets(self, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        return await self.request("GET", "/api/v1/assets", params={"page": page, "limit": limit})

    # ----- reports -------------------------------------------------------

    async def get_attribution_report(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        creator_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.request("GET", "/api/v1/reports/attribution", params={
            "start_date": start_date,
            "end_date": end_date,
            "creator_id": creator_id,
        })

    async def get_commission_summary(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.request("GET", "/api/v1/reports/commissions", params={
            "start_date": start_date,
            "end_date": end_date,
        })

    # ----- account -------------------------------------------------------

    async def validate_api_key(self) -> Dict[str, Any]:
        """Probe the account endpoint; never raises."""
        try:
            await self.request("GET", "/api/v1/account")
            return {"valid": True}
        except OceAPIError as e:
            return {"valid": False, "error": e.message}
