"""
Integration tests for the one-time bootstrap of a Beds24 property.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy.engine import Engine

from sync_beds24.db.readers.audit_log import list_audit_entries
from sync_beds24.db.readers.id_map import count_mappings
from sync_beds24.db.readers.pms import count_bookings
from sync_beds24.db.readers.sync_state import get_sync_state
from sync_beds24.db.writers.sync_state import acquire_sync_lock
from sync_beds24.errors import (
    AlreadyBootstrapped,
    ConnectionNotFound,
    PartialFailure,
    PreconditionError,
    SyncInProgress,
)
from sync_beds24.models.id_map import EntityKind
from sync_beds24.services.bootstrap import bootstrap_property
from sync_beds24.utils.datetime import utc_now

PROPERTY = {
    "id": 1001,
    "name": "Harbour Hotel",
    "roomTypes": [{"id": 501, "name": "Double", "qty": 4}, {"id": 502, "name": "Suite"}],
}

BOOKINGS = [
    {
        "id": 9001,
        "roomId": 501,
        "status": "confirmed",
        "arrival": "2025-07-01",
        "departure": "2025-07-03",
        "firstName": "Ada",
        "modifiedTime": "2025-06-01T08:00:00Z",
    },
    {
        "id": 9002,
        "roomId": 502,
        "status": "new",
        "arrival": "2025-07-10",
        "departure": "2025-07-12",
        "guests": [{"id": 77, "firstName": "Grace", "lastName": "Hopper"}],
        "modifiedTime": "2025-06-02T08:00:00Z",
    },
]


def _serve_property(fake_api: Any, bookings: list[dict[str, Any]]) -> None:
    fake_api.json("GET", "/properties", {"success": True, "data": [PROPERTY]})
    fake_api.json("GET", "/bookings", {"data": bookings, "pages": {"nextPageExists": False}})


def _bootstrap_audit(engine: Engine) -> list[Any]:
    with engine.connect() as conn:
        entries = list_audit_entries(
            conn, since=utc_now() - timedelta(hours=1), operation="bootstrap"
        )
    return list(reversed(entries))


@pytest.mark.integration
def test_bootstrap_imports_rooms_and_bookings(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test a complete bootstrap: rooms, bookings, guests, flags and the seeded cursor."""
    seed.connection()
    _serve_property(fake_api, BOOKINGS)
    started = utc_now()

    result = bootstrap_property(db_engine, "hotel-1", "1001", trace_id="trace-boot", now=started)

    assert result.status == "success"
    assert result.counts == {
        "room_types_created": 2,
        "bookings_created": 2,
        "bookings_updated": 0,
        "guests_created": 2,
    }
    assert result.completed_at is not None

    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
        assert count_bookings(conn, "hotel-1") == 2
        assert count_mappings(conn, "hotel-1", EntityKind.ROOM) == 2

    assert state is not None
    assert state.bootstrap_completed is True
    assert state.sync_enabled is True
    assert state.last_bookings_modified_from == started
    assert state.sync_locked_at is None

    bookings_call = fake_api.calls_to("/bookings")[0]
    assert bookings_call["params"]["arrivalFrom"] is not None
    assert [e.status for e in _bootstrap_audit(db_engine)] == ["started", "success"]
    assert {e.trace_id for e in _bootstrap_audit(db_engine)} == {"trace-boot"}


@pytest.mark.integration
def test_second_bootstrap_is_refused_without_remote_calls(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that a bootstrapped hotel refuses another bootstrap and audits the refusal."""
    seed.connection()
    _serve_property(fake_api, BOOKINGS)
    bootstrap_property(db_engine, "hotel-1", "1001")
    calls_before = len(fake_api.calls)

    with pytest.raises(AlreadyBootstrapped) as exc_info:
        bootstrap_property(db_engine, "hotel-1", "1001")

    assert exc_info.value.completed_at is not None
    assert len(fake_api.calls) == calls_before
    statuses = [e.status for e in _bootstrap_audit(db_engine)]
    assert statuses == ["started", "success", "started", "error"]
    assert _bootstrap_audit(db_engine)[-1].error_category == "precondition"


@pytest.mark.integration
def test_bootstrap_partial_failure_leaves_hotel_retryable(
    db_engine: Engine, seed: Any, fake_api: Any
) -> None:
    """Test that a failed entity keeps the hotel unbootstrapped and a retry completes it."""
    seed.connection()
    broken = {"id": 9003, "arrival": "not-a-date", "departure": "2025-07-12"}
    _serve_property(fake_api, [*BOOKINGS, broken])

    with pytest.raises(PartialFailure) as exc_info:
        bootstrap_property(db_engine, "hotel-1", "1001")

    assert [f["remote_id"] for f in exc_info.value.failures] == ["9003"]
    assert exc_info.value.counts["bookings_created"] == 2
    with db_engine.connect() as conn:
        state = get_sync_state(conn, "hotel-1")
    assert state is not None
    assert state.bootstrap_completed is False
    assert state.sync_enabled is False
    assert state.sync_locked_at is None

    fake_api.routes.clear()
    _serve_property(fake_api, BOOKINGS)
    result = bootstrap_property(db_engine, "hotel-1", "1001")

    assert result.counts["room_types_created"] == 0
    assert result.counts["bookings_created"] == 0
    assert result.counts["bookings_updated"] == 2
    with db_engine.connect() as conn:
        assert count_bookings(conn, "hotel-1") == 2


@pytest.mark.integration
def test_bootstrap_without_connection(db_engine: Engine, fake_api: Any) -> None:
    """Test that a hotel without a connection is refused before any remote call."""
    with pytest.raises(ConnectionNotFound):
        bootstrap_property(db_engine, "hotel-1", "1001")

    assert fake_api.calls == []
    assert [e.status for e in _bootstrap_audit(db_engine)] == ["started", "error"]


@pytest.mark.integration
def test_bootstrap_refuses_other_property(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a hotel bound to one property cannot be bootstrapped from another."""
    seed.connection(property_id="2002")
    seed.state(property_id="1001", bootstrapped=False)

    with pytest.raises(PreconditionError):
        bootstrap_property(db_engine, "hotel-1", "2002")

    assert fake_api.calls == []


@pytest.mark.integration
def test_bootstrap_refused_while_locked(db_engine: Engine, seed: Any, fake_api: Any) -> None:
    """Test that a bootstrap does not run while another run holds the hotel's lock."""
    seed.connection()
    seed.state(bootstrapped=False)
    with db_engine.begin() as conn:
        acquire_sync_lock(conn, "hotel-1", "other-run", utc_now(), 900)

    with pytest.raises(SyncInProgress):
        bootstrap_property(db_engine, "hotel-1", "1001")

    assert fake_api.calls == []
