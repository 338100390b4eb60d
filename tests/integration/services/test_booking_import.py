"""
Integration tests for idempotent application of room types and bookings.
"""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.engine import Engine

from sync_beds24.db.readers.id_map import count_mappings, resolve_local_id
from sync_beds24.db.readers.pms import count_bookings, get_booking
from sync_beds24.models.id_map import EntityKind
from sync_beds24.schemas.beds24 import BookingPayload, RoomTypePayload
from sync_beds24.services.booking_import import apply_booking, apply_room_type


def _booking(**overrides: Any) -> BookingPayload:
    payload = {
        "id": 9001,
        "roomId": 501,
        "status": "confirmed",
        "arrival": "2025-07-01",
        "departure": "2025-07-05",
        "numAdult": 2,
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "price": 480.0,
        "modifiedTime": "2025-06-01T08:00:00Z",
    }
    payload.update(overrides)
    return BookingPayload.model_validate(payload)


@pytest.mark.integration
def test_apply_room_type_creates_once(db_engine: Engine) -> None:
    """Test that a room type is created on first sight and left alone afterwards."""
    room = RoomTypePayload.model_validate({"id": 501, "name": "Double", "maxPeople": 2})

    with db_engine.begin() as conn:
        created = apply_room_type(conn, "hotel-1", room)
        again = apply_room_type(conn, "hotel-1", room)
        mappings = count_mappings(conn, "hotel-1", EntityKind.ROOM)

    assert (created, again) == (True, False)
    assert mappings == 1


@pytest.mark.integration
def test_apply_booking_is_idempotent(db_engine: Engine, seed: Any) -> None:
    """Test that applying the same booking twice yields one booking, one guest, one mapping."""
    room_type_id = seed.room("hotel-1", "501")
    booking = _booking()

    with db_engine.begin() as conn:
        first = apply_booking(conn, "hotel-1", booking)
    with db_engine.begin() as conn:
        second = apply_booking(conn, "hotel-1", booking)
        stored = get_booking(conn, first.local_id)
        bookings = count_bookings(conn, "hotel-1")
        guests = count_mappings(conn, "hotel-1", EntityKind.GUEST)

    assert first.created is True and first.guest_created is True
    assert second.created is False and second.guest_created is False
    assert second.local_id == first.local_id
    assert bookings == 1
    assert guests == 1
    assert stored is not None
    assert stored["room_type_id"] == room_type_id
    assert stored["adults"] == 2
    assert stored["status"] == "confirmed"


@pytest.mark.integration
def test_apply_booking_updates_existing_record(db_engine: Engine) -> None:
    """Test that a changed booking overwrites the mapped local record."""
    with db_engine.begin() as conn:
        first = apply_booking(conn, "hotel-1", _booking())
    with db_engine.begin() as conn:
        apply_booking(
            conn,
            "hotel-1",
            _booking(status="cancelled", cancelTime="2025-06-02T09:00:00Z", numAdult=None),
        )
        stored = get_booking(conn, first.local_id)

    assert stored is not None
    assert stored["status"] == "cancelled"
    assert stored["cancelled_at"] is not None
    assert stored["adults"] == 0


@pytest.mark.integration
def test_apply_booking_keeps_unmapped_room_reference(db_engine: Engine) -> None:
    """Test that a booking for an unknown room keeps the remote room id for later linking."""
    with db_engine.begin() as conn:
        applied = apply_booking(conn, "hotel-1", _booking(roomId=777))
        stored = get_booking(conn, applied.local_id)
        mapped = resolve_local_id(conn, "hotel-1", EntityKind.BOOKING, "9001")

    assert stored is not None
    assert stored["room_type_id"] is None
    assert stored["remote_room_id"] == "777"
    assert mapped == applied.local_id


@pytest.mark.integration
def test_apply_booking_without_guest_details(db_engine: Engine) -> None:
    """Test that a booking with no guest information creates no guest."""
    with db_engine.begin() as conn:
        applied = apply_booking(
            conn, "hotel-1", _booking(firstName=None, lastName=None, email=None)
        )

    assert applied.guest_created is False
