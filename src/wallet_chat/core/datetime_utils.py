"""Datetime helpers shared across the package."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "ensure_utc",
    "serialize_datetime",
    "utc_now",
]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC value."""
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` in UTC, treating naive values as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime) -> str:
    """Serialise ``value`` to ISO 8601 in UTC with a ``Z`` suffix."""
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
