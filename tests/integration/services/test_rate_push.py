"""
Integration tests for pushing rates and restrictions to Beds24.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import pytest
from sqlalchemy.engine import Engine

from sync_beds24.db.readers.audit_log import list_audit_entries
from sync_beds24.db.readers.pms import get_calendar_days
from sync_beds24.db.readers.rate_push_history import get_push_record
from sync_beds24.db.readers.sync_state import get_sync_state
from sync_beds24.db.writers.pms import insert_room_type
from sync_beds24.db.writers.sync_state import acquire_sync_lock
from sync_beds24.errors import InvalidRequestError, MappingNotFound, PreconditionError
from sync_beds24.services.rate_push import push_rates
from sync_beds24.utils.datetime import utc_now

CALENDAR_PATH = "/inventory/rooms/calendar"
OK = [{"success": True}]
REJECTED = [{"success": False, "errors": ["price1 out of range"]}]
START = date(2025, 9, 1)
NEXT_DAY = date(2025, 9, 2)


def _push_audit(engine: Engine) -> list[Any]:
    with engine.connect() as conn:
        return list_audit_entries(
            conn, since=utc_now() - timedelta(hours=1), operation="rate_push"
        )


@pytest.mark.integration
def test_push_splits_range_into_batches(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that 120 days go out as 50 + 50 + 20 day writes with the write token."""
    hotel = seed.hotel()
    fake_api.json("POST", CALENDAR_PATH, OK)
    start = date(2025, 9, 1)
    end = start + timedelta(days=119)

    result = push_rates(
        db_engine, "hotel-1", hotel.room_type_id, start, end, {"rate": 99.0, "minStay": 2}
    )

    assert result.status == "success"
    assert result.batches == 3
    assert result.successful_batches == 3
    assert result.lines_total == 120
    assert result.lines_successful == 120

    calls = fake_api.calls_to(CALENDAR_PATH)
    assert len(calls) == 3
    assert all(c["headers"]["token"] == "write-token" for c in calls)
    lines = [c["json"][0]["calendar"][0] for c in calls]
    assert [(line["from"], line["to"]) for line in lines] == [
        ("2025-09-01", "2025-10-20"),
        ("2025-10-21", "2025-12-09"),
        ("2025-12-10", "2025-12-29"),
    ]
    assert lines[0] == {"from": "2025-09-01", "to": "2025-10-20", "price1": 99.0, "minStay": 2}
    assert calls[0]["json"][0]["roomId"] == 501


@pytest.mark.integration
def test_push_mirrors_values_and_records_history(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that pushed values land in calendar_days and one history row is kept."""
    hotel = seed.hotel()
    fake_api.json("POST", CALENDAR_PATH, OK)
    start = date(2025, 9, 1)
    end = date(2025, 9, 3)

    result = push_rates(
        db_engine,
        "hotel-1",
        hotel.room_type_id,
        start,
        end,
        {"availability": 4, "stopSell": True},
        pushed_by="revenue-manager",
    )

    with db_engine.connect() as conn:
        days = get_calendar_days(conn, "hotel-1", hotel.room_type_id, start, end)
        record = get_push_record(conn, result.history_id)
    assert [d["available"] for d in days] == [4, 4, 4]
    assert all(d["stop_sell"] for d in days)
    assert record is not None
    assert record["status"] == "success"
    assert record["lines_total"] == 3
    assert record["batches_successful"] == 1
    assert record["pushed_by"] == "revenue-manager"
    assert record["updates"] == {"availability": 4, "stop_sell": True}
    assert record["remote_room_id"] == "501"


@pytest.mark.integration
def test_push_reports_failed_batch(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a rejected batch does not stop later batches and is named in the result."""
    hotel = seed.hotel()
    fake_api.json("POST", CALENDAR_PATH, OK)
    fake_api.json("POST", CALENDAR_PATH, REJECTED)
    fake_api.json("POST", CALENDAR_PATH, OK)
    start = date(2025, 9, 1)

    result = push_rates(
        db_engine, "hotel-1", hotel.room_type_id, start, start + timedelta(days=119), {"rate": 80}
    )

    assert result.status == "partial"
    assert result.successful_batches == 2
    assert result.lines_successful == 70
    [failed] = result.failed_batches
    assert (failed["start"], failed["end"]) == ("2025-10-21", "2025-12-09")
    assert "price1 out of range" in failed["error"]
    assert len(fake_api.calls_to(CALENDAR_PATH)) == 3

    with db_engine.connect() as conn:
        mirrored = get_calendar_days(
            conn, "hotel-1", hotel.room_type_id, date(2025, 10, 21), date(2025, 12, 9)
        )
    assert mirrored == []
    entry = _push_audit(db_engine)[0]
    assert entry.status == "partial"
    assert entry.records_processed == 70


@pytest.mark.integration
def test_push_all_batches_failing_is_error(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    hotel = seed.hotel()
    fake_api.json("POST", CALENDAR_PATH, {"error": "down"}, status_code=500)

    result = push_rates(db_engine, "hotel-1", hotel.room_type_id, START, NEXT_DAY, {"rate": 1})

    assert result.status == "error"
    assert result.successful_batches == 0
    assert _push_audit(db_engine)[0].status == "error"


@pytest.mark.integration
def test_push_unmapped_room_type(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a room type without a Beds24 room is refused before any call."""
    seed.hotel()
    with db_engine.begin() as conn:
        local_only = insert_room_type(conn, "hotel-1", {"name": "Local only"})

    with pytest.raises(MappingNotFound):
        push_rates(db_engine, "hotel-1", local_only, START, NEXT_DAY, {"rate": 1})

    with pytest.raises(MappingNotFound):
        push_rates(db_engine, "hotel-1", "no-such-room", START, NEXT_DAY, {"rate": 1})

    assert fake_api.calls == []
    assert [e.error_category for e in _push_audit(db_engine)] == ["precondition", "precondition"]


@pytest.mark.integration
@pytest.mark.parametrize("updates", [{}, {"rate": -5}])
def test_push_rejects_invalid_updates(
    db_engine: Engine, seed: Any, fake_api: Any, updates: dict[str, Any]
) -> None:
    hotel = seed.hotel()

    with pytest.raises(InvalidRequestError):
        push_rates(db_engine, "hotel-1", hotel.room_type_id, START, NEXT_DAY, updates)

    assert fake_api.calls == []


@pytest.mark.integration
def test_push_rejects_reversed_range(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    hotel = seed.hotel()

    with pytest.raises(InvalidRequestError):
        push_rates(db_engine, "hotel-1", hotel.room_type_id, NEXT_DAY, START, {"rate": 1})


@pytest.mark.integration
def test_push_requires_write_scope(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a connection granted only read scopes cannot push."""
    seed.connection(scopes=["read:bookings", "read:inventory"])
    seed.state()
    room_type_id = seed.room()

    with pytest.raises(PreconditionError):
        push_rates(db_engine, "hotel-1", room_type_id, START, NEXT_DAY, {"rate": 1})

    assert fake_api.calls == []


@pytest.mark.integration
def test_push_ignores_sync_lock(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a push goes out while a sync holds the hotel lock, leaving the lock alone."""
    hotel = seed.hotel()
    with db_engine.begin() as conn:
        acquire_sync_lock(conn, "hotel-1", "delta-sync-run", utc_now(), 900)
    fake_api.json("POST", CALENDAR_PATH, OK)

    result = push_rates(db_engine, "hotel-1", hotel.room_type_id, START, NEXT_DAY, {"rate": 80.0})

    assert result.status == "success"
    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.sync_lock_owner == "delta-sync-run"
