"""Gmail API client used to forward inbound outreach replies.

WHAT:
    Inserts reply messages into a merchant's Gmail inbox so they appear as
    native emails, keeping the lead's From header.

WHY:
    Merchants read replies where they already read mail. The import endpoint
    applies Gmail's own spam checks and keeps the original Date header.

TOKEN REFRESH:
    On a 401 the client exchanges the stored refresh token for a new access
    token exactly once and retries the original request once. The new token is
    exposed as `refreshed_access_token` so the caller can persist it. A second
    401 raises `GmailAuthError`.

REFERENCES:
    - https://developers.google.com/gmail/api/reference/rest/v1/users.messages/import
    - https://developers.google.com/identity/protocols/oauth2/web-server#offline
"""

import base64
import logging
from email.utils import formatdate
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from oce_app.services.vendor_client import VendorAPIError, VendorClient

logger = logging.getLogger(__name__)

GMAIL_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.insert",
    "https://www.googleapis.com/auth/gmail.readonly",
]


class GmailAPIError(VendorAPIError):
    vendor = "Gmail"


class GmailAuthError(GmailAPIError):
    """Access token rejected and refresh did not recover it."""


def build_raw_message(
    *,
    from_email: str,
    to_email: str,
    subject: Optional[str],
    body: Optional[str],
    in_reply_to: Optional[str] = None,
    date: Optional[str] = None,
) -> str:
    """Build an RFC 2822 HTML message, base64url-encoded without padding."""
    lines = [
        f"From: {from_email}",
        f"To: {to_email}",
        f"Subject: {subject or '(no subject)'}",
        f"Date: {date or formatdate(usegmt=True)}",
        "MIME-Version: 1.0",
        "Content-Type: text/html; charset=UTF-8",
    ]
    if in_reply_to:
        lines.append(f"In-Reply-To: {in_reply_to}")
        lines.append(f"References: {in_reply_to}")

    lines.extend(["", body or ""])
    raw = "\r\n".join(lines)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def build_authorization_url(*, client_id: str, redirect_uri: str, state: str) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(GMAIL_SCOPES),
        "access_type": "offline",  # Request refresh token
        "prompt": "consent",  # Force consent screen to ensure refresh token
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


class GmailClient(VendorClient):
    base_url = GMAIL_BASE_URL
    error_class = GmailAPIError
    log_tag = "[GMAIL]"

    def __init__(
        self,
        *,
        access_token: Optional[str],
        refresh_token: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.refreshed_access_token: Optional[str] = None

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def error_message(self, status_code: int, data: Any) -> str:
        message = None
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            message = data["error"].get("message")
        return f"Gmail API error: {message or f'HTTP {status_code}'}"

    # ----- OAuth ---------------------------------------------------------

    async def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            logger.error("[GMAIL] Token request failed: %s", e)
            raise GmailAuthError(f"Token request failed: {e}") from e
        data = self._parse(response)
        if not response.is_success or not isinstance(data, dict) or not data.get("access_token"):
            detail = "unknown"
            if isinstance(data, dict):
                detail = data.get("error_description") or data.get("error") or detail
            raise GmailAuthError(f"Token request failed: {detail}", status_code=response.status_code, raw=data)
        return data

    async def refresh_access_token(self) -> str:
        data = await self._token_request({
            "client_id": self.client_id or "",
            "client_secret": self.client_secret or "",
            "refresh_token": self.refresh_token or "",
            "grant_type": "refresh_token",
        })
        self.access_token = data["access_token"]
        self.refreshed_access_token = data["access_token"]
        logger.info("[GMAIL] Access token refreshed")
        return self.access_token

    async def exchange_code(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        """Exchange an authorization code for access and refresh tokens."""
        data = await self._token_request({
            "client_id": self.client_id or "",
            "client_secret": self.client_secret or "",
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        })
        self.access_token = data["access_token"]
        self.refresh_token = data.get("refresh_token") or self.refresh_token
        return data

    # ----- requests ------------------------------------------------------

    async def request(self, method: str, path: str, body: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        """Send a request, refreshing the access token once on a 401."""
        try:
            return await super().request(method, path, body, params)
        except GmailAPIError as e:
            if e.status_code != 401:
                raise
            if not self.refresh_token:
                raise GmailAuthError(e.message, status_code=401, raw=e.raw) from e

        await self.refresh_access_token()
        try:
            return await super().request(method, path, body, params)
        except GmailAPIError as e:
            if e.status_code == 401:
                raise GmailAuthError(e.message, status_code=401, raw=e.raw) from e
            raise

    async def get_profile(self) -> Dict[str, Any]:
        return await self.request("GET", "/users/me/profile")

    async def insert_message(
        self,
        *,
        from_email: str,
        to_email: str,
        subject: Optional[str],
        body: Optional[str],
        in_reply_to: Optional[str] = None,
        date: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        raw = build_raw_message(
            from_email=from_email,
            to_email=to_email,
            subject=subject,
            body=body,
            in_reply_to=in_reply_to,
            date=date,
        )
        return await self.request(
            "POST",
            "/users/me/messages/import",
            {"raw": raw, "labelIds": label_ids or ["INBOX", "UNREAD"]},
        )
