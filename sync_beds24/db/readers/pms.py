from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from sync_beds24.models.pms import Booking, CalendarDay, RoomType


def get_booking(conn: Connection, booking_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch a local booking as a dict.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        booking_id (str): Local booking id.

    Returns:
        Optional[dict]: Booking columns, or None.
    """
    row = conn.execute(select(Booking.__table__).where(Booking.id == booking_id)).fetchone()
    return dict(row._mapping) if row else None


def count_bookings(conn: Connection, hotel_id: str) -> int:
    return int(
        conn.execute(
            select(func.count(Booking.id)).where(Booking.hotel_id == hotel_id)
        ).scalar_one()
    )


def room_type_exists(conn: Connection, hotel_id: str, room_type_id: str) -> bool:
    return (
        conn.execute(
            select(RoomType.id).where(RoomType.id == room_type_id, RoomType.hotel_id == hotel_id)
        ).first()
        is not None
    )


def get_calendar_days(
    conn: Connection, hotel_id: str, room_type_id: str, start: date, end: date
) -> list[dict[str, Any]]:
    """Calendar rows of one room type between start and end inclusive, ordered by day."""
    rows = conn.execute(
        select(CalendarDay.__table__)
        .where(
            CalendarDay.hotel_id == hotel_id,
            CalendarDay.room_type_id == room_type_id,
            CalendarDay.day >= start,
            CalendarDay.day <= end,
        )
        .order_by(CalendarDay.day)
    ).fetchall()
    return [dict(row._mapping) for row in rows]
