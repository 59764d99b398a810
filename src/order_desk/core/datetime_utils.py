"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "serialize_datetime",
    "parse_datetime",
    "ensure_utc",
    "to_utc",
    "utcnow",
]


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Like :func:`to_utc` but passes ``None`` through."""
    return None if value is None else to_utc(value)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to a fixed-width UTC ISO 8601 string.

    The fixed width keeps lexical and chronological ordering identical, which
    the SQL range filters rely on.
    """
    if value is None:
        return None
    return to_utc(value).isoformat(timespec="microseconds")


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string, returning ``None`` when it cannot be read."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return ensure_utc(parsed)
