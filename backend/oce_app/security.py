"""Security utilities: credential encryption, masking and Shopify signatures.

WHAT:
    - Fernet encryption for every vendor credential stored per shop
    - Masking of credentials before they are returned to the dashboard
    - HMAC verification for Shopify webhooks (raw body) and OAuth callbacks (query)
    - Shopify session-token (id_token) decoding and signed OAuth `state` values

WHY:
    Tenants hand us Cloudflare, Smartlead, Gmail and OCE credentials. They must
    never sit in plaintext in the database or leave the API unmasked, and every
    inbound callback must be proven to come from Shopify.

REFERENCES:
    - https://shopify.dev/docs/apps/build/webhooks/subscribe/https#step-5-verify-the-webhook
    - https://shopify.dev/docs/apps/auth/oauth/getting-started#step-2-verify-the-installation-request
    - https://shopify.dev/docs/apps/build/authentication-authorization/session-tokens
"""

import base64
import hashlib
import hmac
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

from cryptography.fernet import Fernet, InvalidToken
from jose import jwt, JWTError

from oce_app.utils.env import load_env_file, require_env


ALGORITHM = "HS256"
MASK_CHAR = "•"
STATE_EXPIRES_MINUTES = 10

logger = logging.getLogger(__name__)


def _load_cipher() -> Fernet:
    """Build the Fernet cipher from TOKEN_ENCRYPTION_KEY (read from .env in dev)."""
    if not os.getenv("TOKEN_ENCRYPTION_KEY"):
        load_env_file()
    key = require_env("TOKEN_ENCRYPTION_KEY")
    try:
        return Fernet(key)
    except (ValueError, TypeError) as exc:
        raise RuntimeError(
            "TOKEN_ENCRYPTION_KEY is not a valid Fernet key (32 url-safe base64 bytes). "
            "Run backend/generate_keys.py to create one."
        ) from exc


_cipher = _load_cipher()


# =============================================================================
# CREDENTIAL ENCRYPTION
# =============================================================================

def encrypt_secret(plaintext: str, *, context: str) -> str:
    """Encrypt a tenant credential for storage.

    `context` names the column (e.g. "email_settings.smartlead_api_key") and
    only appears in debug logs.
    """
    if not plaintext:
        raise ValueError(f"Refusing to encrypt an empty value for {context}")

    token = _cipher.encrypt(plaintext.encode("utf-8"))
    logger.debug("[TOKEN_ENCRYPT] %s encrypted (%d chars)", context, len(plaintext))
    return token.decode("ascii")


def decrypt_secret(ciphertext: str, *, context: str) -> str:
    """Inverse of `encrypt_secret`.

    Raises:
        ValueError: ciphertext is empty, corrupted, or from a different key
    """
    if not ciphertext:
        raise ValueError(f"No stored value to decrypt for {context}")

    try:
        plaintext = _cipher.decrypt(ciphertext.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeEncodeError) as exc:
        logger.error("[TOKEN_DECRYPT] %s does not decrypt with the current key", context)
        raise ValueError(f"Stored value for {context} cannot be decrypted") from exc
    logger.debug("[TOKEN_DECRYPT] %s decrypted", context)
    return plaintext


def mask_secret(value: Optional[str]) -> str:
    """Partially redact a credential for display.

    Short values (12 characters or fewer) are fully masked; longer ones keep
    the first 6 and last 4 characters around a fixed-width mask.
    """
    if not value:
        return ""
    if len(value) <= 12:
        return MASK_CHAR * len(value)
    return f"{value[:6]}{MASK_CHAR * 20}{value[-4:]}"


# =============================================================================
# SHOPIFY SIGNATURES
# =============================================================================

def verify_webhook_hmac(request_body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """Check X-Shopify-Hmac-SHA256: base64 HMAC-SHA256 of the raw body, keyed by the app secret."""
    if not secret or not hmac_header:
        logger.warning(
            "[SHOPIFY_WEBHOOK] Cannot verify webhook (secret configured=%s, header present=%s)",
            bool(secret), bool(hmac_header),
        )
        return False

    digest = hmac.new(secret.encode("utf-8"), request_body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    if hmac.compare_digest(expected, hmac_header):
        return True
    logger.warning("[SHOPIFY_WEBHOOK] Signature mismatch")
    return False


def verify_query_hmac(params: Mapping[str, str], secret: Optional[str]) -> bool:
    """Verify the `hmac` parameter Shopify appends to install and callback URLs.

    The message is every other parameter, sorted by key, rendered as
    `key=value` and joined with `&`. The digest is hex-encoded.
    """
    provided = params.get("hmac")
    if not secret or not provided:
        return False

    message = "&".join(
        f"{key}={value}"
        for key, value in sorted(params.items())
        if key not in ("hmac", "signature")
    )
    computed = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, provided)


def decode_session_token(token: str, *, api_key: str, api_secret: str) -> Dict[str, Any]:
    """Decode a Shopify App Bridge session token (id_token).

    Raises jose.JWTError when the signature, audience or expiry is invalid.
    """
    return jwt.decode(token, api_secret, algorithms=[ALGORITHM], audience=api_key)


def shop_from_session_payload(payload: Mapping[str, Any]) -> Optional[str]:
    """Extract the shop domain from a session token's `dest` claim."""
    dest = payload.get("dest") or ""
    host = urlparse(dest).hostname if "://" in dest else dest
    return host or None


# =============================================================================
# OAUTH STATE
# =============================================================================

def create_state_token(subject: str, secret: str, *, purpose: str) -> str:
    """Create a short-lived signed `state` value for an OAuth redirect."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "purpose": purpose,
        "nonce": secrets.token_urlsafe(16),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=STATE_EXPIRES_MINUTES)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_state_token(token: str, secret: str, *, purpose: str) -> Optional[str]:
    """Return the subject of a valid `state` value, or None."""
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("purpose") != purpose:
        return None
    return payload.get("sub")
