from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_beds24.models.audit_log import AuditLogEntry
from sync_beds24.utils.datetime import ensure_utc


@dataclass(frozen=True)
class AuditRecord:
    id: int
    operation: str
    status: str
    created_at: datetime
    hotel_id: Optional[str] = None
    entity_type: Optional[str] = None
    request_cost: Optional[float] = None
    limit_remaining: Optional[float] = None
    limit_resets_in: Optional[int] = None
    duration_ms: Optional[int] = None
    records_processed: Optional[int] = None
    error_message: Optional[str] = None
    error_category: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    trace_id: Optional[str] = None


def _to_record(row: Any) -> AuditRecord:
    created_at = ensure_utc(row.created_at)
    assert created_at is not None
    return AuditRecord(
        id=row.id,
        operation=row.operation,
        status=row.status,
        created_at=created_at,
        hotel_id=row.hotel_id,
        entity_type=row.entity_type,
        request_cost=row.request_cost,
        limit_remaining=row.limit_remaining,
        limit_resets_in=row.limit_resets_in,
        duration_ms=row.duration_ms,
        records_processed=row.records_processed,
        error_message=row.error_message,
        error_category=row.error_category,
        metadata=dict(row._mapping["metadata"] or {}),
        trace_id=row.trace_id,
    )


def list_audit_entries(
    conn: Connection,
    since: datetime,
    hotel_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[AuditRecord]:
    """
    Fetch audit entries created at or after ``since``, newest first.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        since (datetime): Window start.
        hotel_id (Optional[str]): Restrict to one hotel.
        operation (Optional[str]): Restrict to one operation name.
        limit (Optional[int]): Maximum number of rows.

    Returns:
        list[AuditRecord]: Matching entries.
    """
    table = AuditLogEntry.__table__
    stmt = select(table).where(table.c.created_at >= since)
    if hotel_id is not None:
        stmt = stmt.where(table.c.hotel_id == hotel_id)
    if operation is not None:
        stmt = stmt.where(table.c.operation == operation)
    stmt = stmt.order_by(table.c.created_at.desc(), table.c.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return [_to_record(row) for row in conn.execute(stmt).fetchall()]


def latest_credit_entry(
    conn: Connection, hotel_id: str, since: datetime
) -> Optional[AuditRecord]:
    """Most recent entry for the hotel that recorded a remaining credit budget."""
    table = AuditLogEntry.__table__
    row = conn.execute(
        select(table)
        .where(
            table.c.hotel_id == hotel_id,
            table.c.created_at >= since,
            table.c.limit_remaining.is_not(None),
        )
        .order_by(table.c.created_at.desc(), table.c.id.desc())
        .limit(1)
    ).fetchone()
    return _to_record(row) if row else None
