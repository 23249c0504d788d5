"""Timestamp utilities for UTC handling and window boundaries.

This module provides utilities for working with timestamps in UTC:
- Getting current UTC time
- Converting timezone-naive to timezone-aware UTC
- Computing the start of the UTC hour/day containing a timestamp
- Formatting timestamps for logs and storage
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    If the datetime is timezone-naive, it's treated as UTC.
    If the datetime has a different timezone, it's converted to UTC.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def start_of_hour(dt: datetime) -> datetime:
    """Truncate a datetime to the start of its UTC hour.

    Example:
        >>> from datetime import datetime, timezone
        >>> start_of_hour(datetime(2025, 11, 4, 12, 34, 56, tzinfo=timezone.utc)).isoformat()
        '2025-11-04T12:00:00+00:00'
    """
    return ensure_utc(dt).replace(minute=0, second=0, microsecond=0)


def start_of_day(dt: datetime) -> datetime:
    """Truncate a datetime to the start of its UTC day.

    Example:
        >>> from datetime import datetime, timezone
        >>> start_of_day(datetime(2025, 11, 4, 12, 34, 56, tzinfo=timezone.utc)).isoformat()
        '2025-11-04T00:00:00+00:00'
    """
    return ensure_utc(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def days_ago(days: int, now: Optional[datetime] = None) -> datetime:
    """Return the UTC timestamp ``days`` days before ``now``.

    Args:
        days: Number of days to go back
        now: Reference time (defaults to current UTC time)

    Returns:
        Timezone-aware datetime in UTC
    """
    reference = ensure_utc(now) if now is not None else utc_now()
    return reference - timedelta(days=days)


def format_timestamp(dt: datetime, include_microseconds: bool = False) -> str:
    """Format a datetime as ISO 8601 string in UTC.

    Args:
        dt: Datetime to format
        include_microseconds: Whether to include microseconds in output

    Returns:
        ISO 8601 formatted string with 'Z' suffix

    Example:
        >>> from datetime import datetime, timezone
        >>> dt = datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc)
        >>> format_timestamp(dt)
        '2025-11-04T12:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""

    if include_microseconds:
        return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string produced by ``format_timestamp``.

    Args:
        dt_str: ISO 8601 formatted string, with or without microseconds

    Returns:
        Timezone-aware datetime in UTC, or None for empty input
    """
    if not dt_str:
        return None

    cleaned = dt_str.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    return ensure_utc(datetime.fromisoformat(cleaned))
