"""UTC timestamp conversion for SQLite TEXT columns ("YYYY-MM-DD HH:MM:SS")."""

from __future__ import annotations

from datetime import datetime, timezone

SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def to_sqlite_timestamp(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(SQLITE_TIMESTAMP_FORMAT)


def from_sqlite_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp as an aware UTC datetime (None if missing/invalid)."""
    if not value:
        return None
    try:
        dt = datetime.strptime(value, SQLITE_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return dt.replace(tzinfo=timezone.utc)
