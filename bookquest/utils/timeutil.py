"""Datetime helpers for the naive-UTC storage convention."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Treat naive datetimes (as stored in the database) as UTC.

    >>> ensure_utc(datetime(2025, 1, 1, 12, 0)).tzinfo == UTC
    True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_storage(dt: datetime | None) -> datetime | None:
    """Convert an aware datetime to the naive UTC value written to columns."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def local_time(dt: datetime, timezone: str) -> datetime:
    """Express ``dt`` in the given IANA timezone."""
    return ensure_utc(dt).astimezone(ZoneInfo(timezone))


def isoformat(dt: datetime | None) -> str | None:
    """Serialize a stored datetime as an explicit UTC ISO string."""
    return ensure_utc(dt).isoformat() if dt else None
