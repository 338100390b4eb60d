"""
Append-only audit logging for remote calls and sync operations.

Every Beds24 request and every bootstrap, delta sync, push and recovery run
writes a row here. Health assessment and monitoring read these rows back, so the
error category is always recorded alongside the message.
"""

from __future__ import annotations

import time
from typing import Any, Optional, Union

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_beds24.db.writers.audit_log import insert_audit_entry
from sync_beds24.errors import error_category
from sync_beds24.logging_config import redact
from sync_beds24.metrics import audit_write_failures

logger = structlog.get_logger(__name__)


class OperationTimer:
    """
    Measure wall-clock duration of an operation in milliseconds.

    Example:
        >>> timer = OperationTimer()
        >>> do_work()
        >>> timer.elapsed_ms()
        42
    """

    def __init__(self) -> None:
        self._start = time.monotonic()

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


def current_trace_id() -> Optional[str]:
    """trace_id bound in structlog contextvars by the request middleware or an orchestrator."""
    value = structlog.contextvars.get_contextvars().get("trace_id")
    return str(value) if value else None


def log_audit(
    engine: Engine,
    operation: str,
    status: str,
    hotel_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    request_cost: Optional[float] = None,
    limit_remaining: Optional[float] = None,
    limit_resets_in: Optional[int] = None,
    duration_ms: Optional[int] = None,
    records_processed: Optional[int] = None,
    error: Union[BaseException, str, None] = None,
    category: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    trace_id: Optional[str] = None,
) -> None:
    """
    Append one audit entry in its own transaction.

    The write is independent of the caller's transaction so a rolled-back batch
    still leaves its audit trail. A failing audit write is logged and counted but
    never raised, so it cannot mask the operation's own outcome.

    Args:
        engine: SQLAlchemy engine
        operation: Operation name (e.g., "bootstrap", "delta_sync", "api:get_bookings")
        status: started, success, error or partial
        hotel_id: Hotel reference, None for system-wide operations
        entity_type: Entity the operation dealt with
        request_cost: Credits charged by Beds24
        limit_remaining: Remaining five-minute credit budget
        limit_resets_in: Seconds until the budget resets
        duration_ms: Operation duration
        records_processed: Records fetched or written
        error: Exception or message for failed operations
        category: Error category; derived from the exception when omitted
        metadata: Free-form details, redacted before storage
        trace_id: Correlation id; taken from the logging context when omitted
    """
    error_message: Optional[str] = None
    if isinstance(error, BaseException):
        error_message = str(error) or error.__class__.__name__
        category = category or error_category(error)
    elif error:
        error_message = error

    details = dict(metadata or {})
    if category:
        details["error_category"] = category

    entry = {
        "operation": operation,
        "status": status,
        "hotel_id": hotel_id,
        "entity_type": entity_type,
        "request_cost": request_cost,
        "limit_remaining": limit_remaining,
        "limit_resets_in": limit_resets_in,
        "duration_ms": duration_ms,
        "records_processed": records_processed,
        "error_message": error_message,
        "error_category": category,
        "metadata": redact(details),
        "trace_id": trace_id or current_trace_id(),
    }

    try:
        with engine.begin() as conn:
            insert_audit_entry(conn, entry)
    except SQLAlchemyError as e:
        audit_write_failures.inc()
        logger.error(
            "audit_write_failed",
            operation=operation,
            status=status,
            hotel_id=hotel_id,
            error=str(e),
        )
