"""SQLAlchemy model for rate/availability push history."""

from sqlalchemy import Column, Date, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from sync_beds24.config import SCHEMA
from sync_beds24.models.base import Base, JSONType, new_uuid
from sync_beds24.utils.datetime import utc_now

PUSH_PENDING = "pending"
PUSH_SUCCESS = "success"
PUSH_PARTIAL = "partial"
PUSH_ERROR = "error"


class RatePushHistory(Base):
    """
    ORM model for one push invocation and its batches.

    Written twice: created as ``pending`` before the first batch is sent and
    finalized once after the last batch. ``batch_results`` records each
    batch's date range and outcome so failed ranges can be resubmitted.
    """

    __tablename__ = "rate_push_history"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_uuid)
    hotel_id = Column(String(64), nullable=False, index=True)
    room_type_id = Column(String(36), nullable=False)
    remote_room_id = Column(String(64), nullable=False)
    date_range_start = Column(Date, nullable=False)
    date_range_end = Column(Date, nullable=False)
    updates = Column(JSONType, nullable=False, default=dict)
    batches_total = Column(Integer, nullable=False, default=0)
    batches_successful = Column(Integer, nullable=False, default=0)
    lines_total = Column(Integer, nullable=False, default=0)
    lines_successful = Column(Integer, nullable=False, default=0)
    batch_results = Column(JSONType, nullable=False, default=list)
    status = Column(String(16), nullable=False, default=PUSH_PENDING)
    error_message = Column(Text, nullable=True)
    pushed_by = Column(String(64), nullable=True)
    trace_id = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
