"""UTC timestamp helpers shared by the state, storage and dataset files."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return dt as an aware UTC datetime (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Example: ``2026-02-24T08:30:12.000Z``
    """
    return ensure_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_compact(dt: datetime) -> str:
    """Format a datetime as a compact UTC stamp for directory names.

    Example: ``20260224T083012Z``
    """
    return ensure_utc(dt).strftime("%Y%m%dT%H%M%SZ")


def from_epoch(value: float) -> datetime:
    """Convert a unix timestamp in seconds or milliseconds to UTC.

    Values above 1e12 are taken as milliseconds.
    """
    seconds = value / 1000 if value > 1e12 else value
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
