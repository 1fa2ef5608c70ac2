"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from batch_tracker.utils.datetime_utils import utc_now

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime, default=utc_now)
"""

from datetime import date, datetime, time, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to naive UTC for storage and comparison.

    SQLite drops tzinfo on the way back out, so everything the services
    compare or sort goes through this first.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def start_of_day(value: date) -> datetime:
    """Midnight at the start of the given date (naive)."""
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)
