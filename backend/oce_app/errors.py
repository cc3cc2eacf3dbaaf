"""
Application Exceptions
======================

Exception types raised by use-case services and rendered by the handlers in
`oce_app/main.py` as `{"success": false, "error": <message>}`.

WHY THIS FILE EXISTS
--------------------
Services should not know about HTTP. They raise one of these with a message
suitable for direct display and the status code travels with the exception:

    ValidationFailed        400  missing/malformed input
    ConfigurationMissing    400  tenant has not supplied a required credential
    Unauthorized            401  bad or missing shared secret
    ReauthorizationRequired 401  no usable Shopify session, carries install URL
    NotFound                404  row does not exist for this shop

Vendor failures use the `VendorAPIError` hierarchy in
`oce_app/services/vendor_client.py` instead.

RELATED FILES
-------------
- oce_app/main.py: exception handlers
- oce_app/deps.py: raises Unauthorized / ReauthorizationRequired
"""

from typing import Optional


class AppError(Exception):
    """
    Base exception for all application errors.

    PARAMETERS:
        message: Human-readable error description
        status_code: HTTP status used when rendered at the API boundary
    """

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(AppError):
    status_code = 400


class ConfigurationMissing(AppError):
    """A credential the operation needs has not been saved yet."""

    status_code = 400


class Unauthorized(AppError):
    status_code = 401


class NotFound(AppError):
    status_code = 404


class ReauthorizationRequired(AppError):
    """
    The shop has no stored offline token and no usable session token.

    WHAT:
        Carries the install URL the embedded app must navigate to.

    RECOVERY:
        App Bridge reads the reauthorize headers and redirects the top frame.
    """

    status_code = 401

    def __init__(self, shop: str, install_url: str, message: str = "Reauthorization required"):
        super().__init__(message)
        self.shop = shop
        self.install_url = install_url
