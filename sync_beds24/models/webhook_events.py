"""SQLAlchemy model for received Beds24 webhook payloads."""

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.sql import func

from sync_beds24.config import SCHEMA
from sync_beds24.models.base import Base, JSONType, new_uuid
from sync_beds24.utils.datetime import utc_now

WEBHOOK_BOOKING = "booking"
WEBHOOK_UNKNOWN = "unknown"


class WebhookEvent(Base):
    """
    ORM model for one webhook delivery.

    Every authenticated payload is stored before it is processed, including
    ones for unknown properties, so a failed or skipped delivery can be
    inspected and replayed by the next delta sync.
    """

    __tablename__ = "webhook_events"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_uuid)
    hotel_id = Column(String(64), nullable=True, index=True)
    property_id = Column(String(64), nullable=True)
    booking_id = Column(String(64), nullable=True)
    webhook_type = Column(String(32), nullable=False)
    event_type = Column(String(64), nullable=True)
    payload = Column(JSONType, nullable=False, default=dict)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processing_error = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
