"""Public booking tokens.

Only the peppered SHA-256 hash of a token is stored; the raw value is shown
to the coordinator once and is never logged.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta

TOKEN_BYTES = 32


def generate_public_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str, pepper: str) -> str:
    return hashlib.sha256(f"{pepper}{token}".encode("utf-8")).hexdigest()


def token_expiry(now: datetime, ttl_days: int) -> datetime:
    return now + timedelta(days=ttl_days)


def is_token_expired(expires_at: datetime, now: datetime) -> bool:
    return now >= expires_at


def build_public_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/book/{token}"


__all__ = [
    "build_public_link",
    "generate_public_token",
    "hash_token",
    "is_token_expired",
    "token_expiry",
]
