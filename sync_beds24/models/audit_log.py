"""SQLAlchemy model for the append-only ingestion audit log."""

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from sync_beds24.config import SCHEMA
from sync_beds24.models.base import Base, BigIntPK, JSONType
from sync_beds24.utils.datetime import utc_now

AUDIT_STARTED = "started"
AUDIT_SUCCESS = "success"
AUDIT_ERROR = "error"
AUDIT_PARTIAL = "partial"


class AuditLogEntry(Base):
    """
    ORM model for one remote call or sync operation.

    Rows are never updated or deleted. Health assessment reads error rates
    from here; ``error_category`` holds the failure class so precondition
    refusals can be told apart from real failures.
    """

    __tablename__ = "audit_log"
    __table_args__ = {"schema": SCHEMA}

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    provider = Column(String(32), nullable=False, default="beds24")
    operation = Column(String(64), nullable=False, index=True)
    entity_type = Column(String(32), nullable=True)
    status = Column(String(16), nullable=False)
    hotel_id = Column(String(64), nullable=True, index=True)
    request_cost = Column(Float, nullable=True)
    limit_remaining = Column(Float, nullable=True)
    limit_resets_in = Column(Integer, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    records_processed = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    error_category = Column(String(32), nullable=True)
    details = Column("metadata", JSONType, nullable=False, default=dict)
    trace_id = Column(String(64), nullable=True, index=True)
    created_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
