import json
from typing import Any

import structlog
from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from sync_beds24.config import DEBUG
from sync_beds24.db.writers._upsert import upsert_with_distinct_check
from sync_beds24.models.base import new_uuid
from sync_beds24.models.pms import Booking, CalendarDay, Guest, RoomType
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

BOOKING_FIELDS = (
    "room_type_id",
    "guest_id",
    "remote_room_id",
    "arrival",
    "departure",
    "status",
    "adults",
    "children",
    "total_amount",
    "channel",
    "remote_modified_at",
    "cancelled_at",
)

CALENDAR_FIELDS = (
    "available",
    "rate",
    "stop_sell",
    "closed_arrival",
    "closed_departure",
    "min_stay",
    "max_stay",
)


def insert_room_type(conn: Connection, hotel_id: str, data: dict[str, Any]) -> str:
    """
    Insert a local room type.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        data (dict): name, capacity, quantity.

    Returns:
        str: New room type id.
    """
    room_type_id = new_uuid()
    now = utc_now()
    conn.execute(
        insert(RoomType).values(
            id=room_type_id,
            hotel_id=hotel_id,
            name=data.get("name") or "Room",
            capacity=data.get("capacity"),
            quantity=data.get("quantity"),
            created_at=now,
            updated_at=now,
        )
    )
    return room_type_id


def insert_guest(conn: Connection, hotel_id: str, data: dict[str, Any]) -> str:
    """Insert a local guest and return its id."""
    guest_id = new_uuid()
    now = utc_now()
    conn.execute(
        insert(Guest).values(
            id=guest_id,
            hotel_id=hotel_id,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            email=data.get("email"),
            phone=data.get("phone"),
            country=data.get("country"),
            created_at=now,
            updated_at=now,
        )
    )
    return guest_id


def insert_booking(conn: Connection, hotel_id: str, data: dict[str, Any]) -> str:
    """
    Insert a local booking.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        data (dict): Booking columns (see BOOKING_FIELDS).

    Returns:
        str: New booking id.
    """
    booking_id = new_uuid()
    now = utc_now()
    values = {key: data.get(key) for key in BOOKING_FIELDS}
    values["adults"] = values["adults"] or 0
    values["children"] = values["children"] or 0

    if DEBUG:
        logger.debug("booking_insert", sample=json.dumps(values, default=str))

    conn.execute(
        insert(Booking).values(
            id=booking_id, hotel_id=hotel_id, created_at=now, updated_at=now, **values
        )
    )
    return booking_id


def update_booking(conn: Connection, booking_id: str, data: dict[str, Any]) -> bool:
    """
    Overwrite a local booking with the latest remote values.

    A guest link already present locally is kept when the payload carries none.

    Returns:
        bool: True if the booking exists.
    """
    values = {key: data[key] for key in BOOKING_FIELDS if key in data}
    if values.get("guest_id") is None:
        values.pop("guest_id", None)
    values["adults"] = values.get("adults") or 0
    values["children"] = values.get("children") or 0
    values["updated_at"] = utc_now()
    result = conn.execute(update(Booking).where(Booking.id == booking_id).values(**values))
    return bool(result.rowcount)


def upsert_calendar_days(
    conn: Connection, rows: list[dict[str, Any]], columns: list[str] | None = None
) -> int:
    """
    Upsert calendar day rows keyed by (hotel_id, room_type_id, day).

    Args:
        conn (Connection): SQLAlchemy DB connection.
        rows (list[dict]): Rows carrying hotel_id, room_type_id, day and the given columns.
        columns (list[str] | None): Calendar columns present in every row; defaults to all.

    Returns:
        int: Number of rows submitted.
    """
    if not rows:
        return 0
    columns = list(columns or CALENDAR_FIELDS)
    now = utc_now()
    prepared = []
    for row in rows:
        prepared.append(
            {
                "hotel_id": row["hotel_id"],
                "room_type_id": row["room_type_id"],
                "day": row["day"],
                "updated_at": now,
                **{col: row.get(col) for col in columns},
            }
        )
    # Boolean flags are NOT NULL; a missing value means "not set"
    for row in prepared:
        for flag in ("stop_sell", "closed_arrival", "closed_departure"):
            if flag in row and row[flag] is None:
                row[flag] = False

    upsert_with_distinct_check(
        conn=conn,
        table=CalendarDay,
        rows=prepared,
        conflict_columns=["hotel_id", "room_type_id", "day"],
        distinct_columns=columns,
    )
    return len(prepared)
