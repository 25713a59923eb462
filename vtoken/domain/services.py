# vtoken/domain/services.py
from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

CODE_LENGTH = 6


def generate_6digit_code() -> str:
    """Zero-padded 6-digit numeric code."""
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


def generate_jti() -> str:
    """128-bit random identifier, hex encoded."""
    return secrets.token_hex(16)


def generate_username() -> str:
    return f"user_{secrets.token_hex(4)}"


def hash_session_token(raw_token: str) -> str:
    """Sessions are looked up by the SHA-256 of the raw cookie value."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expiry_window(
    ttl_seconds: int, *, now: datetime | None = None
) -> tuple[datetime, datetime]:
    issued_at = (now or utcnow()).replace(microsecond=0)
    return issued_at, issued_at + timedelta(seconds=ttl_seconds)


def format_local_expiry(expires_at: datetime, tz_name: str | None) -> tuple[str, str]:
    """
    Return (tz_name, local_string) for display. Unknown zones fall back to UTC.
    """
    try:
        zone = ZoneInfo(tz_name) if tz_name else ZoneInfo("UTC")
    except (ZoneInfoNotFoundError, ValueError):
        tz_name, zone = "UTC", ZoneInfo("UTC")
    return tz_name or "UTC", expires_at.astimezone(zone).strftime("%Y-%m-%d %H:%M:%S")
