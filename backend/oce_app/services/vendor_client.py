"""Shared HTTP primitive for third-party API clients.

WHAT:
    `VendorClient.request(method, path, body)` issues exactly one HTTP request
    against a fixed base URL, injects the vendor's auth, and turns the response
    into either parsed JSON or a typed `VendorAPIError`.

WHY:
    Cloudflare, Smartlead, Gmail and OCE differ only in auth placement, success
    flag and error message shape. Subclasses override those hooks and keep the
    request/response handling in one place.

TESTING:
    Every client accepts an `httpx` transport, so tests pass
    `httpx.MockTransport(handler)` and never touch the network.
"""

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class VendorAPIError(Exception):
    """Non-2xx or vendor-reported failure.

    Attributes:
        status_code: HTTP status returned by the vendor (None on transport errors)
        raw: The vendor's raw error payload (parsed JSON or text)
    """

    vendor = "vendor"

    def __init__(self, message: str, status_code: Optional[int] = None, raw: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.raw = raw


class VendorClient:
    """Base class for one-request-per-call JSON API clients."""

    base_url: str = ""
    error_class = VendorAPIError
    log_tag = "[VENDOR]"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = DEFAULT_TIMEOUT):
        self._transport = transport
        self._timeout = timeout

    # ----- hooks ---------------------------------------------------------

    def auth_headers(self) -> Dict[str, str]:
        return {}

    def auth_params(self) -> Dict[str, str]:
        return {}

    def is_success(self, data: Any) -> bool:
        return True

    def error_message(self, status_code: int, data: Any) -> str:
        return f"HTTP {status_code}"

    def unwrap(self, data: Any) -> Any:
        return data

    # ----- primitive -----------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, url, json=json_body, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error("%s %s %s failed: %s", self.log_tag, method, url, e)
            raise self.error_class(f"{self.error_class.vendor} request failed: {e}") from e

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send one request and return the parsed (and unwrapped) JSON body.

        Raises:
            VendorAPIError subclass: on non-2xx status or vendor success=false
        """
        query = dict(self.auth_params())
        if params:
            query.update({k: v for k, v in params.items() if v is not None})

        headers = {"Content-Type": "application/json", **self.auth_headers()}
        response = await self._send(
            method,
            f"{self.base_url}{path}",
            json_body=body,
            params=query or None,
            headers=headers,
        )
        data = self._parse(response)

        if not response.is_success or not self.is_success(data):
            message = self.error_message(response.status_code, data)
            logger.warning("%s %s %s -> %s: %s", self.log_tag, method, path, response.status_code, message)
            raise self.error_class(message, status_code=response.status_code, raw=data)

        return self.unwrap(data)
