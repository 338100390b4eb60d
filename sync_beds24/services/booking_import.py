"""
Idempotent application of Beds24 room types and bookings to local records.

Shared by bootstrap and delta sync. Every write goes through the ID map: a
remote entity seen for the first time gets a new local record plus a mapping,
one seen before updates (bookings) or leaves untouched (room types) the record
it is already mapped to. Re-applying the same payload never duplicates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.engine import Connection

from sync_beds24.db.readers.id_map import resolve_local_id
from sync_beds24.db.writers.id_map import insert_mapping
from sync_beds24.db.writers.pms import (
    insert_booking,
    insert_guest,
    insert_room_type,
    update_booking,
)
from sync_beds24.errors import SyncInProgress
from sync_beds24.models.id_map import EntityKind
from sync_beds24.schemas.beds24 import BookingPayload, GuestPayload, RoomTypePayload

# Beds24 booking status -> local booking status
BOOKING_STATUS_MAP = {
    "new": "confirmed",
    "confirmed": "confirmed",
    "request": "requested",
    "cancelled": "cancelled",
    "black": "blocked",
    "inquiry": "inquiry",
}
DEFAULT_BOOKING_STATUS = "confirmed"


@dataclass(frozen=True)
class AppliedBooking:
    local_id: str
    created: bool
    guest_created: bool


def map_booking_status(remote_status: Optional[str]) -> str:
    if not remote_status:
        return DEFAULT_BOOKING_STATUS
    return BOOKING_STATUS_MAP.get(remote_status.lower(), DEFAULT_BOOKING_STATUS)


def _claim_mapping(
    conn: Connection, hotel_id: str, entity: EntityKind, remote_id: str, local_id: str
) -> None:
    winner = insert_mapping(conn, hotel_id, entity, remote_id, local_id)
    if winner != local_id:
        # Another writer mapped this remote id first; roll back our insert
        raise SyncInProgress(hotel_id)


def apply_room_type(conn: Connection, hotel_id: str, room: RoomTypePayload) -> bool:
    """
    Create a local room type for an unmapped Beds24 room.

    Mapped rooms are left untouched so local edits survive re-imports.

    Args:
        conn (Connection): Connection inside the caller's transaction.
        hotel_id (str): Local hotel identifier.
        room (RoomTypePayload): Beds24 room type.

    Returns:
        bool: True if a local room type was created.
    """
    if resolve_local_id(conn, hotel_id, EntityKind.ROOM, str(room.id)) is not None:
        return False

    local_id = insert_room_type(
        conn,
        hotel_id,
        {
            "name": room.name or f"Room {room.id}",
            "capacity": room.max_people,
            "quantity": room.qty,
        },
    )
    _claim_mapping(conn, hotel_id, EntityKind.ROOM, str(room.id), local_id)
    return True


def _guest_for(booking: BookingPayload) -> tuple[Optional[str], Optional[GuestPayload]]:
    """Pick the primary guest payload and its remote id, if the booking has a guest."""
    if booking.guests:
        guest = booking.guests[0]
        remote_id = str(guest.id) if guest.id is not None else f"{booking.id}_guest_0"
        return remote_id, guest
    if booking.first_name or booking.last_name or booking.email:
        guest = GuestPayload(
            firstName=booking.first_name,
            lastName=booking.last_name,
            email=booking.email,
            phone=booking.phone,
            country=booking.country,
        )
        return f"{booking.id}_guest_0", guest
    return None, None


def _apply_guest(
    conn: Connection, hotel_id: str, booking: BookingPayload
) -> tuple[Optional[str], bool]:
    remote_id, guest = _guest_for(booking)
    if remote_id is None or guest is None:
        return None, False

    local_id = resolve_local_id(conn, hotel_id, EntityKind.GUEST, remote_id)
    if local_id is not None:
        return local_id, False

    local_id = insert_guest(
        conn,
        hotel_id,
        {
            "first_name": guest.first_name,
            "last_name": guest.last_name,
            "email": guest.email,
            "phone": guest.phone,
            "country": guest.country,
        },
    )
    _claim_mapping(conn, hotel_id, EntityKind.GUEST, remote_id, local_id)
    return local_id, True


def booking_row(
    conn: Connection, hotel_id: str, booking: BookingPayload, guest_id: Optional[str]
) -> dict[str, Any]:
    """Translate a Beds24 booking into local booking columns."""
    room_type_id = None
    if booking.room_id is not None:
        room_type_id = resolve_local_id(conn, hotel_id, EntityKind.ROOM, str(booking.room_id))

    status = map_booking_status(booking.status)
    cancelled_at = booking.cancel_time if status == "cancelled" else None

    return {
        "room_type_id": room_type_id,
        "guest_id": guest_id,
        "remote_room_id": str(booking.room_id) if booking.room_id is not None else None,
        "arrival": booking.arrival,
        "departure": booking.departure,
        "status": status,
        "adults": booking.num_adult,
        "children": booking.num_child,
        "total_amount": booking.price,
        "channel": booking.referer,
        "remote_modified_at": booking.modified_time,
        "cancelled_at": cancelled_at,
    }


def apply_booking(conn: Connection, hotel_id: str, booking: BookingPayload) -> AppliedBooking:
    """
    Upsert one Beds24 booking (and its primary guest) through the ID map.

    Args:
        conn (Connection): Connection inside the caller's per-booking transaction.
        hotel_id (str): Local hotel identifier.
        booking (BookingPayload): Validated Beds24 booking.

    Returns:
        AppliedBooking: Local id and what was created.
    """
    guest_id, guest_created = _apply_guest(conn, hotel_id, booking)
    row = booking_row(conn, hotel_id, booking, guest_id)

    local_id = resolve_local_id(conn, hotel_id, EntityKind.BOOKING, str(booking.id))
    if local_id is not None:
        update_booking(conn, local_id, row)
        return AppliedBooking(local_id=local_id, created=False, guest_created=guest_created)

    local_id = insert_booking(conn, hotel_id, row)
    _claim_mapping(conn, hotel_id, EntityKind.BOOKING, str(booking.id), local_id)
    return AppliedBooking(local_id=local_id, created=True, guest_created=guest_created)
