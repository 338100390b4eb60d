"""
SQLAlchemy models for the PMS records the sync core reads and upserts.

These belong to the hotel domain. The sync core never deletes them; a
cancellation from Beds24 only changes a booking's status.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import expression, func

from sync_beds24.config import SCHEMA
from sync_beds24.models.base import Base, new_uuid
from sync_beds24.utils.datetime import utc_now


class RoomType(Base):
    """A sellable room type of a hotel."""

    __tablename__ = "room_types"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_uuid)
    hotel_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )


class Guest(Base):
    """Guest CRM record."""

    __tablename__ = "guests"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_uuid)
    hotel_id = Column(String(64), nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    country = Column(String(8), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )


class Booking(Base):
    """Reservation record. remote_room_id is kept when the room has no local mapping yet."""

    __tablename__ = "bookings"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_uuid)
    hotel_id = Column(String(64), nullable=False, index=True)
    room_type_id = Column(
        String(36), ForeignKey(f"{SCHEMA}.room_types.id", ondelete="SET NULL"), nullable=True
    )
    guest_id = Column(
        String(36), ForeignKey(f"{SCHEMA}.guests.id", ondelete="SET NULL"), nullable=True
    )
    remote_room_id = Column(String(64), nullable=True)
    arrival = Column(Date, nullable=False)
    departure = Column(Date, nullable=False)
    status = Column(String(16), nullable=False)
    adults = Column(Integer, nullable=False, default=0)
    children = Column(Integer, nullable=False, default=0)
    total_amount = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    channel = Column(String(64), nullable=True)
    remote_modified_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )


class CalendarDay(Base):
    """Daily availability and rate for one room type."""

    __tablename__ = "calendar_days"
    __table_args__ = (
        UniqueConstraint("hotel_id", "room_type_id", "day", name="uq_calendar_days_room_day"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    hotel_id = Column(String(64), nullable=False, index=True)
    room_type_id = Column(
        String(36), ForeignKey(f"{SCHEMA}.room_types.id", ondelete="CASCADE"), nullable=False
    )
    day = Column(Date, nullable=False)
    available = Column(Integer, nullable=True)
    rate = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    stop_sell = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    closed_arrival = Column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    closed_departure = Column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    min_stay = Column(Integer, nullable=True)
    max_stay = Column(Integer, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )
