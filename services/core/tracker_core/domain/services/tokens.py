"""Signed, expiring tokens for links in notification emails.

Tokens are Fernet tokens (AES-128-CBC with HMAC-SHA256) carrying the
tenant ID. Fernet stamps the creation time into the token, and the TTL
is enforced when the token is verified.

Usage:
    token = create_signed_token(tenant.id, settings.secret_key)
    tenant_id = verify_signed_token(token, settings.secret_key)  # None if invalid
"""

import base64
import hashlib
import time
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

DEFAULT_TOKEN_TTL_SECONDS = 30 * 24 * 60 * 60


def _fernet(secret_key: str) -> Fernet:
    """Fernet keyed by the application secret.

    Fernet needs a base64-encoded 32-byte key, so the secret is hashed
    into one.
    """
    digest = hashlib.sha256(secret_key.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def create_signed_token(
    tenant_id: int,
    secret_key: str,
    now: Optional[float] = None,
) -> str:
    """Create a token identifying a tenant, issued at ``now``."""
    now = time.time() if now is None else now
    token = _fernet(secret_key).encrypt_at_time(str(tenant_id).encode("utf-8"), int(now))
    return token.decode("ascii")


def verify_signed_token(
    token: str,
    secret_key: str,
    ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
    now: Optional[float] = None,
) -> Optional[int]:
    """Return the tenant ID of a valid token, or None.

    A token is invalid when malformed, when it was not issued with this
    key, or when it is older than ``ttl_seconds``.
    """
    if not token or not token.isascii():
        return None

    now = time.time() if now is None else now
    try:
        payload = _fernet(secret_key).decrypt_at_time(
            token.encode("ascii"), ttl=ttl_seconds, current_time=int(now)
        )
    except InvalidToken:
        return None

    try:
        return int(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None


__all__ = [
    "create_signed_token",
    "verify_signed_token",
    "DEFAULT_TOKEN_TTL_SECONDS",
]
