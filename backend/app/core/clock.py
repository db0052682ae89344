"""
UTC time helpers.

Timestamps are written timezone-aware. SQLite hands them back naive, so
anything read from the database goes through `ensure_utc` before comparison.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_unix(seconds) -> Optional[datetime]:
    """Convert a provider epoch timestamp (Stripe uses seconds)."""
    if seconds in (None, ""):
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
