"""
Shared helpers for persisted models.

Timestamps are stored as timezone-aware UTC. Backends without a timezone
column type (SQLite) hand them back naive, so readers normalize with as_utc().
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_timestamp_column() -> DateTime:
    """Column type for every persisted timestamp."""
    return DateTime(timezone=True)
