"""Smartlead.ai REST client: mailboxes, warmup and campaigns.

Auth is the tenant's API key passed as the `api_key` query parameter on
every request.

REFERENCES:
    - https://api.smartlead.ai/reference/welcome
"""

import logging
from typing import Any, Dict, List, Optional

from oce_app.services.vendor_client import VendorAPIError, VendorClient

logger = logging.getLogger(__name__)

SMARTLEAD_BASE_URL = "https://server.smartlead.ai"


class SmartleadAPIError(VendorAPIError):
    vendor = "Smartlead"


class SmartleadClient(VendorClient):
    base_url = SMARTLEAD_BASE_URL
    error_class = SmartleadAPIError
    log_tag = "[SMARTLEAD]"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def auth_params(self) -> Dict[str, str]:
        return {"api_key": self.api_key}

    def error_message(self, status_code: int, data: Any) -> str:
        message = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error")
        return f"Smartlead API error: {message or f'HTTP {status_code}'}"

    async def test_connection(self) -> Dict[str, Any]:
        try:
            campaigns = await self.list_campaigns()
            return {"valid": True, "campaign_count": len(campaigns or [])}
        except SmartleadAPIError as e:
            return {"valid": False, "error": e.message}

    # ----- email accounts ------------------------------------------------

    async def add_email_account(
        self,
        *,
        from_email: str,
        password: str,
        smtp_host: str,
        imap_host: str,
        from_name: Optional[str] = None,
        user_name: Optional[str] = None,
        smtp_port: int = 587,
        imap_port: int = 993,
        max_daily_limit: int = 20,
        warmup_enabled: bool = True,
    ) -> Dict[str, Any]:
        """Connect an SMTP/IMAP mailbox to Smartlead."""
        logger.info("[SMARTLEAD] Adding email account %s", from_email)
        return await self.request(
            "POST",
            "/api/v1/email-accounts/save",
            {
                "from_email": from_email,
                "from_name": from_name or from_email.split("@")[0],
                "user_name": user_name or from_email,
                "password": password,
                "smtp_host": smtp_host,
                "smtp_port": smtp_port,
                "imap_host": imap_host,
                "imap_port": imap_port,
                "max_email_per_day": max_daily_limit,
                "warmup_enabled": warmup_enabled,
                "type": "SMTP",
            },
        )

    async def update_warmup(self, email_account_id: str, enabled: bool) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/api/v1/email-accounts/{email_account_id}/warmup",
            {"warmup_enabled": enabled},
        )

    async def get_warmup_stats(self, email_account_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"/api/v1/email-accounts/{email_account_id}/warmup-stats")

    # ----- campaigns -----------------------------------------------------

    async def list_campaigns(self) -> List[Dict[str, Any]]:
        return await self.request("GET", "/api/v1/campaigns")

    async def create_campaign(self, name: str) -> Dict[str, Any]:
        return await self.request("POST", "/api/v1/campaigns/create", {"name": name})

    async def add_email_accounts_to_campaign(self, campaign_id: str, email_account_ids: List[Any]) -> Any:
        return await self.request(
            "POST",
            f"/api/v1/campaigns/{campaign_id}/email-accounts",
            {"email_account_ids": email_account_ids},
        )

    async def get_campaign_stats(self, campaign_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"/api/v1/campaigns/{campaign_id}/statistics")
