from datetime import date
from typing import Any, Optional

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from sync_beds24.models.base import new_uuid
from sync_beds24.models.rate_push_history import PUSH_PENDING, RatePushHistory
from sync_beds24.utils.datetime import utc_now


def create_push_record(
    conn: Connection,
    hotel_id: str,
    room_type_id: str,
    remote_room_id: str,
    start: date,
    end: date,
    updates: dict[str, Any],
    batches_total: int,
    lines_total: int,
    pushed_by: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> str:
    """
    Create the pending history row for a push invocation.

    Returns:
        str: History row id.
    """
    record_id = new_uuid()
    conn.execute(
        insert(RatePushHistory).values(
            id=record_id,
            hotel_id=hotel_id,
            room_type_id=room_type_id,
            remote_room_id=remote_room_id,
            date_range_start=start,
            date_range_end=end,
            updates=updates,
            batches_total=batches_total,
            batches_successful=0,
            lines_total=lines_total,
            lines_successful=0,
            batch_results=[],
            status=PUSH_PENDING,
            pushed_by=pushed_by,
            trace_id=trace_id,
            created_at=utc_now(),
        )
    )
    return record_id


def finalize_push_record(
    conn: Connection,
    record_id: str,
    status: str,
    batches_successful: int,
    lines_successful: int,
    batch_results: list[dict[str, Any]],
    error_message: Optional[str] = None,
) -> None:
    """
    Write the terminal outcome of a push. Only pending rows are updated, so a
    completed record is never mutated again.
    """
    conn.execute(
        update(RatePushHistory)
        .where(RatePushHistory.id == record_id, RatePushHistory.status == PUSH_PENDING)
        .values(
            status=status,
            batches_successful=batches_successful,
            lines_successful=lines_successful,
            batch_results=batch_results,
            error_message=error_message,
            completed_at=utc_now(),
        )
    )
