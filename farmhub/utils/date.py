"""
Date utility functions

Timestamps are stored as naive UTC datetimes, the same way the
database columns hold them.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time without tzinfo"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def expires_after(*, minutes: int = 0, hours: int = 0, days: int = 0,
                  start: Optional[datetime] = None) -> datetime:
    """
    Calculate an expiry timestamp from a start time

    Args:
        start: The start time (default: now)

    Returns:
        datetime: Expiry time
    """
    return (start or utc_now()) + timedelta(minutes=minutes, hours=hours, days=days)


def is_expired(expires_at: Optional[datetime]) -> bool:
    """True when the expiry time is missing or already passed"""
    if expires_at is None:
        return True
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    return utc_now() >= expires_at


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
