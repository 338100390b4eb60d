"""UTC datetime and date-range utilities."""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes and convert aware ones to UTC.

    Some database drivers (SQLite) hand back naive values for
    TIMESTAMP WITH TIME ZONE columns; everything we store is UTC.

    Args:
        value: Datetime read from the database or a remote payload

    Returns:
        Aware UTC datetime, or None when value is None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_remote_timestamp(value: datetime) -> str:
    """Format a datetime the way Beds24 expects in query filters (ISO 8601, UTC, Z suffix)."""
    aware = ensure_utc(value)
    assert aware is not None
    return aware.strftime("%Y-%m-%dT%H:%M:%SZ")


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def split_date_range(start: date, end: date, max_days: int) -> list[tuple[date, date]]:
    """
    Split an inclusive date range into consecutive chunks of at most max_days days.

    Args:
        start: First day of the range
        end: Last day of the range (inclusive)
        max_days: Maximum number of days per chunk

    Returns:
        List of (chunk_start, chunk_end) tuples, inclusive on both ends

    Example:
        >>> split_date_range(date(2025, 1, 1), date(2025, 1, 5), 2)
        [(date(2025, 1, 1), date(2025, 1, 2)), (date(2025, 1, 3), date(2025, 1, 4)),
         (date(2025, 1, 5), date(2025, 1, 5))]
    """
    if max_days < 1:
        raise ValueError("max_days must be at least 1")
    chunks: list[tuple[date, date]] = []
    chunk_start = start
    while chunk_start <= end:
        chunk_end = min(chunk_start + timedelta(days=max_days - 1), end)
        chunks.append((chunk_start, chunk_end))
        chunk_start = chunk_end + timedelta(days=1)
    return chunks
