"""SQLAlchemy model for per-hotel sync cursors and flags."""

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String
from sqlalchemy.sql import expression, func

from sync_beds24.config import SCHEMA
from sync_beds24.models.base import Base, JSONType, new_uuid
from sync_beds24.utils.datetime import utc_now

# Keys of the settings blob
NUDGE_SETTING = "cursor_nudged_at"
CURSOR_HOLD_SETTING = "cursor_hold"


class SyncState(Base):
    """
    ORM model for the sync state of one hotel bound to one Beds24 property.

    Delta sync refuses to run until bootstrap_completed is true and
    sync_enabled is set. The booking cursor only moves forward during normal
    runs; recovery is the only writer allowed to rewind or clear it.
    sync_locked_at/sync_lock_owner implement the per-hotel run guard.
    """

    __tablename__ = "sync_state"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_uuid)
    hotel_id = Column(String(64), nullable=False, unique=True, index=True)
    property_id = Column(String(32), nullable=False)

    bootstrap_completed = Column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    bootstrap_started_at = Column(DateTime(timezone=True), nullable=True)
    bootstrap_completed_at = Column(DateTime(timezone=True), nullable=True)

    last_bookings_modified_from = Column(DateTime(timezone=True), nullable=True)
    last_bookings_synced_at = Column(DateTime(timezone=True), nullable=True)
    last_calendar_start = Column(Date, nullable=True)
    last_calendar_end = Column(Date, nullable=True)
    last_calendar_synced_at = Column(DateTime(timezone=True), nullable=True)

    sync_enabled = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    settings = Column(JSONType, nullable=False, default=dict)

    errors_cleared_at = Column(DateTime(timezone=True), nullable=True)
    sync_locked_at = Column(DateTime(timezone=True), nullable=True)
    sync_lock_owner = Column(String(36), nullable=True)
    consecutive_failures = Column(Integer, nullable=False, default=0, server_default="0")
    backoff_until = Column(DateTime(timezone=True), nullable=True)

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
