"""
Unit tests for UTC and date-range helpers.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from sync_beds24.utils.datetime import (
    ensure_utc,
    iter_days,
    split_date_range,
    to_remote_timestamp,
    utc_now,
)


@pytest.mark.unit
def test_utc_now_is_aware() -> None:
    """Test that utc_now returns a timezone-aware UTC datetime."""
    assert utc_now().tzinfo == timezone.utc


@pytest.mark.unit
def test_ensure_utc_handles_naive_and_offset_values() -> None:
    """Test that naive values are tagged UTC and offset values are converted."""
    naive = datetime(2025, 3, 1, 12, 0)
    offset = datetime(2025, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(naive) == datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert ensure_utc(offset) == datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert ensure_utc(offset).tzinfo == timezone.utc  # type: ignore[union-attr]
    assert ensure_utc(None) is None


@pytest.mark.unit
def test_to_remote_timestamp() -> None:
    """Test the Z-suffixed format used in Beds24 query filters."""
    value = datetime(2025, 3, 1, 14, 5, 9, tzinfo=timezone(timedelta(hours=2)))

    assert to_remote_timestamp(value) == "2025-03-01T12:05:09Z"


@pytest.mark.unit
def test_iter_days_is_inclusive() -> None:
    """Test that both ends of the range are yielded."""
    days = list(iter_days(date(2025, 1, 30), date(2025, 2, 2)))

    assert days == [date(2025, 1, 30), date(2025, 1, 31), date(2025, 2, 1), date(2025, 2, 2)]
    assert list(iter_days(date(2025, 1, 2), date(2025, 1, 1))) == []


@pytest.mark.unit
def test_split_date_range_chunks() -> None:
    """Test that a range is split into consecutive chunks of at most max_days."""
    chunks = split_date_range(date(2025, 1, 1), date(2025, 1, 5), 2)

    assert chunks == [
        (date(2025, 1, 1), date(2025, 1, 2)),
        (date(2025, 1, 3), date(2025, 1, 4)),
        (date(2025, 1, 5), date(2025, 1, 5)),
    ]


@pytest.mark.unit
def test_split_date_range_covers_every_day_once() -> None:
    """Test that chunks neither overlap nor leave gaps."""
    start, end = date(2025, 1, 1), date(2025, 12, 31)
    chunks = split_date_range(start, end, 50)

    covered = [day for s, e in chunks for day in iter_days(s, e)]
    assert covered == list(iter_days(start, end))
    assert all((e - s).days + 1 <= 50 for s, e in chunks)


@pytest.mark.unit
def test_split_date_range_rejects_zero_chunk() -> None:
    """Test that a non-positive chunk size is refused."""
    with pytest.raises(ValueError):
        split_date_range(date(2025, 1, 1), date(2025, 1, 2), 0)
