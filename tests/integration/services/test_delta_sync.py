"""
Integration tests for incremental booking and calendar sync.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_beds24.db.readers.audit_log import list_audit_entries
from sync_beds24.db.readers.pms import count_bookings, get_calendar_days
from sync_beds24.db.readers.sync_state import get_sync_state
from sync_beds24.db.writers.sync_state import acquire_sync_lock, update_sync_settings
from sync_beds24.errors import (
    InvalidRequestError,
    NotBootstrapped,
    RetryableError,
    SyncInProgress,
)
from sync_beds24.schemas.beds24 import BookingPayload
from sync_beds24.services.booking_import import AppliedBooking
from sync_beds24.services.booking_import import apply_booking as real_apply_booking
from sync_beds24.services.delta_sync import delta_sync
from sync_beds24.utils.datetime import utc_now


def _now() -> datetime:
    return utc_now().replace(microsecond=0)


def _booking(booking_id: int, modified: datetime, **extra: Any) -> dict[str, Any]:
    return {
        "id": booking_id,
        "roomId": 501,
        "status": "confirmed",
        "arrival": "2025-08-01",
        "departure": "2025-08-04",
        "numAdult": 2,
        "lastName": f"Guest {booking_id}",
        "modifiedTime": modified.isoformat(),
        **extra,
    }


def _serve_bookings(fake_api: Any, bookings: list[dict[str, Any]]) -> None:
    fake_api.json("GET", "/bookings", {"data": bookings, "pages": {"nextPageExists": False}})


def _sync_audit(engine: Engine) -> list[Any]:
    with engine.connect() as conn:
        return list_audit_entries(
            conn, since=utc_now() - timedelta(hours=1), operation="delta_sync"
        )


@pytest.mark.integration
def test_delta_sync_advances_cursor_to_latest_booking(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that the cursor moves to the newest modification time written."""
    now = _now()
    cursor = now - timedelta(hours=2)
    seed.hotel(cursor=cursor)
    newest = now - timedelta(minutes=10)
    _serve_bookings(
        fake_api,
        [_booking(9001, now - timedelta(minutes=50)), _booking(9002, newest)],
    )

    result = delta_sync(db_engine, "hotel-1", scope="bookings", now=now)

    assert result.status == "success"
    assert result.bookings_created == 2
    assert result.cursor_before == cursor
    assert result.cursor_after == newest
    assert fake_api.calls_to("/bookings")[0]["params"]["modifiedFrom"] is not None
    assert fake_api.calls_to("/inventory/rooms/calendar") == []

    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
        assert count_bookings(conn, "hotel-1") == 2
    assert state is not None
    assert state.last_bookings_modified_from == newest
    assert state.last_bookings_synced_at == now
    assert state.sync_locked_at is None

    entries = _sync_audit(db_engine)
    assert [e.status for e in entries] == ["success"]
    assert entries[0].records_processed == 2


@pytest.mark.integration
def test_delta_sync_empty_window_keeps_cursor(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that a run with no changes leaves the cursor where it was."""
    now = _now()
    cursor = now - timedelta(hours=1)
    seed.hotel(cursor=cursor)
    _serve_bookings(fake_api, [])

    result = delta_sync(db_engine, "hotel-1", scope="bookings", now=now)

    assert result.bookings_processed == 0
    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.last_bookings_modified_from == cursor


@pytest.mark.integration
def test_delta_sync_writes_calendar_window(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that calendar ranges land as per-day rows and unmapped rooms are skipped."""
    now = _now()
    hotel = seed.hotel()
    today = now.date()
    fake_api.json(
        "GET",
        "/inventory/rooms/calendar",
        {
            "data": [
                {
                    "roomId": 501,
                    "calendar": [
                        {
                            "from": today.isoformat(),
                            "to": (today + timedelta(days=2)).isoformat(),
                            "numAvail": 3,
                            "price1": 120.0,
                            "minStay": 2,
                        }
                    ],
                },
                {"roomId": 999, "calendar": [{"from": today.isoformat(), "to": today.isoformat()}]},
            ]
        },
    )

    result = delta_sync(db_engine, "hotel-1", scope="calendar", now=now)

    assert result.calendar_days == 3
    assert result.rooms_skipped == 1
    assert result.calendar_start == today
    assert fake_api.calls_to("/bookings") == []
    params = fake_api.calls_to("/inventory/rooms/calendar")[0]["params"]
    assert params["roomId"] == ["501"]

    with db_engine.connect() as conn:
        days = get_calendar_days(
            conn, "hotel-1", hotel.room_type_id, today, today + timedelta(days=5)
        )
        state = get_sync_state(conn, "hotel-1")
    assert [d["available"] for d in days] == [3, 3, 3]
    assert {d["rate"] for d in days} == {120.0}
    assert state is not None
    assert state.last_calendar_start == today
    assert state.last_calendar_synced_at == now


@pytest.mark.integration
def test_delta_sync_invalid_record_holds_cursor(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that an unparseable booking keeps the cursor so it is fetched again."""
    now = _now()
    cursor = now - timedelta(hours=2)
    seed.hotel(cursor=cursor)
    _serve_bookings(
        fake_api,
        [_booking(9001, now - timedelta(minutes=5)), {"id": 9100, "arrival": "soon"}],
    )

    result = delta_sync(db_engine, "hotel-1", scope="bookings", now=now)

    assert result.status == "partial"
    assert [f["remote_id"] for f in result.failures] == ["9100"]
    assert result.bookings_created == 1
    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.last_bookings_modified_from == cursor
    entry = _sync_audit(db_engine)[0]
    assert entry.status == "partial"
    assert entry.error_category == "partial"


@pytest.mark.integration
@patch("sync_beds24.services.delta_sync.apply_booking")
def test_delta_sync_failed_upsert_caps_cursor(
    mock_apply: Mock, db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that a booking failing to write caps the cursor at its modification time."""
    now = _now()
    seed.hotel(cursor=now - timedelta(hours=2))
    failing_at = now - timedelta(minutes=30)
    _serve_bookings(
        fake_api,
        [
            _booking(9001, now - timedelta(minutes=50)),
            _booking(9002, failing_at),
            _booking(9003, now - timedelta(minutes=10)),
        ],
    )

    def apply_or_fail(conn: Connection, hotel_id: str, booking: BookingPayload) -> AppliedBooking:
        if booking.id == 9002:
            raise SQLAlchemyError("could not serialize access")
        return real_apply_booking(conn, hotel_id, booking)

    mock_apply.side_effect = apply_or_fail

    result = delta_sync(db_engine, "hotel-1", scope="bookings", now=now)

    assert result.status == "partial"
    assert result.bookings_created == 2
    assert [f["remote_id"] for f in result.failures] == ["9002"]
    assert result.cursor_after == failing_at
    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
        assert count_bookings(conn, "hotel-1") == 2
    assert state is not None
    assert state.last_bookings_modified_from == failing_at
    assert state.settings["cursor_hold"]["runs"] == 1
    assert state.settings["cursor_hold"]["remote_ids"] == ["9002"]
    assert _sync_audit(db_engine)[0].status == "partial"


@pytest.mark.integration
def test_delta_sync_counts_held_runs_until_clean(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that the cursor hold grows per held run and clears on the first clean run."""
    now = _now()
    seed.hotel(cursor=now - timedelta(hours=2))
    good = _booking(9001, now - timedelta(minutes=5))
    bad = {"id": 9100, "arrival": "soon"}
    fake_api.json("GET", "/bookings", {"data": [good, bad]})
    fake_api.json("GET", "/bookings", {"data": [good, bad]})
    fake_api.json("GET", "/bookings", {"data": [good]})

    delta_sync(db_engine, "hotel-1", scope="bookings", now=now)
    delta_sync(db_engine, "hotel-1", scope="bookings", now=now + timedelta(hours=1))

    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    hold = state.settings["cursor_hold"]
    assert hold["runs"] == 2
    assert hold["since"] == now.isoformat()
    assert hold["newest_seen"] == good["modifiedTime"]
    assert hold["remote_ids"] == ["9100"]

    delta_sync(db_engine, "hotel-1", scope="bookings", now=now + timedelta(hours=2))

    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert "cursor_hold" not in state.settings
    assert state.last_bookings_modified_from == now - timedelta(minutes=5)


@pytest.mark.integration
def test_delta_sync_clears_recovery_nudge(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a finished bookings pass drops the marker left by a cursor nudge."""
    now = _now()
    seed.hotel(cursor=now - timedelta(hours=2))
    with db_engine.begin() as conn:
        update_sync_settings(conn, "hotel-1", {"cursor_nudged_at": now.isoformat(), "x": 1})
    _serve_bookings(fake_api, [])

    delta_sync(db_engine, "hotel-1", scope="bookings", now=now)

    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.settings == {"x": 1}


@pytest.mark.integration
def test_delta_sync_server_error_sets_backoff(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that a retryable failure records a backoff and keeps the cursor."""
    now = _now()
    cursor = now - timedelta(hours=1)
    seed.hotel(cursor=cursor)
    fake_api.json("GET", "/bookings", {"error": "down"}, status_code=503)

    with pytest.raises(RetryableError):
        delta_sync(db_engine, "hotel-1", scope="bookings", now=now)

    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.consecutive_failures == 1
    assert state.backoff_until == now + timedelta(seconds=300)
    assert state.last_bookings_modified_from == cursor
    assert state.sync_locked_at is None
    entry = _sync_audit(db_engine)[0]
    assert entry.status == "error"
    assert entry.error_category == "server"


@pytest.mark.integration
def test_delta_sync_success_clears_backoff(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a successful run after a failure resets the failure counter."""
    now = _now()
    seed.hotel(cursor=now - timedelta(hours=1))
    fake_api.json("GET", "/bookings", {"error": "down"}, status_code=500)
    fake_api.json("GET", "/bookings", {"data": []})

    with pytest.raises(RetryableError):
        delta_sync(db_engine, "hotel-1", scope="bookings", now=now)
    delta_sync(db_engine, "hotel-1", scope="bookings", now=now)

    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.consecutive_failures == 0
    assert state.backoff_until is None


@pytest.mark.integration
def test_delta_sync_requires_bootstrap(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a hotel without bootstrap is refused before any remote call."""
    seed.connection()
    seed.state(bootstrapped=False)

    with pytest.raises(NotBootstrapped):
        delta_sync(db_engine, "hotel-1")

    assert fake_api.calls == []
    entry = _sync_audit(db_engine)[0]
    assert entry.status == "error"
    assert entry.error_category == "precondition"


@pytest.mark.integration
def test_delta_sync_rejects_unknown_scope(db_engine: Engine, fake_api: Any) -> None:
    with pytest.raises(InvalidRequestError):
        delta_sync(db_engine, "hotel-1", scope="everything")

    assert fake_api.calls == []


@pytest.mark.integration
def test_delta_sync_refused_while_locked(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a second concurrent run for the same hotel is refused."""
    seed.hotel()
    with db_engine.begin() as conn:
        acquire_sync_lock(conn, "hotel-1", "other-run", utc_now(), 900)

    with pytest.raises(SyncInProgress):
        delta_sync(db_engine, "hotel-1")

    assert fake_api.calls == []
    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.sync_lock_owner == "other-run"
