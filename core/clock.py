"""
core/clock.py -- UTC time helpers.

Every timestamp in FieldPass is a timezone-aware UTC datetime in memory and an
ISO 8601 string at rest. Services take a `clock` callable (defaulting to
utcnow) so tests can pin "now" to the microsecond.
"""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return dt as an aware UTC datetime. Naive values are treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    # timespec pinned so microseconds survive even when they happen to be zero
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 string written by to_iso() (or a naive legacy value)."""
    return ensure_utc(datetime.fromisoformat(value))
