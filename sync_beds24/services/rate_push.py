"""
Push rates, availability and restrictions for a room type to Beds24.

The date range is split into batches no larger than what one calendar write
accepts. Every batch is sent, whatever happened to the previous one, and the
outcome of each is kept so the caller knows exactly which ranges to resubmit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_beds24.config import RATE_PUSH_BATCH_DAYS
from sync_beds24.db.readers.connections import WRITE_TOKEN, ConnectionRecord, get_active_connection
from sync_beds24.db.readers.id_map import resolve_remote_id
from sync_beds24.db.readers.pms import room_type_exists
from sync_beds24.db.writers.pms import upsert_calendar_days
from sync_beds24.db.writers.rate_push_history import create_push_record, finalize_push_record
from sync_beds24.errors import (
    Beds24Error,
    ConnectionNotFound,
    InvalidRequestError,
    MappingNotFound,
    PreconditionError,
)
from sync_beds24.metrics import rate_push_batches
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_PARTIAL, AUDIT_SUCCESS
from sync_beds24.models.base import new_uuid
from sync_beds24.models.id_map import EntityKind
from sync_beds24.models.rate_push_history import PUSH_ERROR, PUSH_PARTIAL, PUSH_SUCCESS
from sync_beds24.network.client import call
from sync_beds24.schemas.beds24 import CalendarPushLine, PushResultPayload
from sync_beds24.schemas.requests import RateUpdates
from sync_beds24.services.audit import OperationTimer, log_audit
from sync_beds24.utils.datetime import iter_days, split_date_range

logger = structlog.get_logger(__name__)

OPERATION = "rate_push"
WRITE_SCOPE = "write:inventory"

# RateUpdates field -> calendar_days column
LOCAL_COLUMNS = {
    "rate": "rate",
    "availability": "available",
    "stop_sell": "stop_sell",
    "closed_arrival": "closed_arrival",
    "closed_departure": "closed_departure",
    "min_stay": "min_stay",
    "max_stay": "max_stay",
}


@dataclass
class PushResult:
    hotel_id: str
    room_type_id: str
    trace_id: str
    history_id: Optional[str] = None
    status: str = PUSH_SUCCESS
    batches: int = 0
    successful_batches: int = 0
    lines_total: int = 0
    lines_successful: int = 0
    failed_batches: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coerce_updates(updates: Union[RateUpdates, dict[str, Any]]) -> RateUpdates:
    if isinstance(updates, RateUpdates):
        parsed = updates
    else:
        try:
            parsed = RateUpdates.model_validate(updates or {})
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid updates: {e}") from e
    if parsed.is_empty():
        raise InvalidRequestError("No updates given")
    return parsed


def build_push_line(start: date, end: date, updates: RateUpdates) -> CalendarPushLine:
    return CalendarPushLine(
        from_date=start,
        to_date=end,
        price1=updates.rate,
        num_avail=updates.availability,
        stop_sell=updates.stop_sell,
        closed_arrival=updates.closed_arrival,
        closed_departure=updates.closed_departure,
        min_stay=updates.min_stay,
        max_stay=updates.max_stay,
    )


def _check_write_scope(connection: ConnectionRecord) -> None:
    if connection.scopes and WRITE_SCOPE not in connection.scopes:
        raise PreconditionError(
            f"Connection of hotel {connection.hotel_id} lacks the {WRITE_SCOPE} scope",
            hotel_id=connection.hotel_id,
        )


def _resolve_target(
    engine: Engine, hotel_id: str, room_type_id: str
) -> tuple[ConnectionRecord, str]:
    with engine.connect() as conn:
        if not room_type_exists(conn, hotel_id, room_type_id):
            raise MappingNotFound(hotel_id, "room_type", room_type_id)
        remote_room_id = resolve_remote_id(conn, hotel_id, EntityKind.ROOM, room_type_id)
        if remote_room_id is None:
            raise MappingNotFound(hotel_id, EntityKind.ROOM.value, room_type_id)
        connection = get_active_connection(conn, hotel_id)
    if connection is None:
        raise ConnectionNotFound(hotel_id)
    _check_write_scope(connection)
    return connection, remote_room_id


def _push_batch(
    engine: Engine,
    connection: ConnectionRecord,
    remote_room_id: str,
    line: CalendarPushLine,
) -> Optional[str]:
    """Send one batch. Returns None on success or the failure message."""
    body = [{"roomId": int(remote_room_id), "calendar": [line.to_wire()]}]
    try:
        response = call(
            engine,
            connection,
            "POST",
            "/inventory/rooms/calendar",
            body=body,
            token_type=WRITE_TOKEN,
            operation="post_calendar",
        )
    except Beds24Error as e:
        return str(e)

    for item in response.items:
        try:
            outcome = PushResultPayload.model_validate(item)
        except ValidationError as e:
            return f"Unreadable push result: {e}"
        if not outcome.success:
            return "; ".join(str(err) for err in outcome.errors) or "Beds24 rejected the batch"
    return None


def _mirror_locally(
    engine: Engine,
    hotel_id: str,
    room_type_id: str,
    start: date,
    end: date,
    updates: RateUpdates,
) -> None:
    values = updates.model_dump(exclude_none=True)
    columns = [LOCAL_COLUMNS[key] for key in values]
    rows = [
        {
            "hotel_id": hotel_id,
            "room_type_id": room_type_id,
            "day": day,
            **{LOCAL_COLUMNS[key]: value for key, value in values.items()},
        }
        for day in iter_days(start, end)
    ]
    with engine.begin() as conn:
        upsert_calendar_days(conn, rows, columns=columns)


def push_rates(
    engine: Engine,
    hotel_id: str,
    room_type_id: str,
    start_date: date,
    end_date: date,
    updates: Union[RateUpdates, dict[str, Any]],
    trace_id: Optional[str] = None,
    pushed_by: Optional[str] = None,
) -> PushResult:
    """
    Push the same updates to every day of [start_date, end_date] for one room type.

    Args:
        engine (Engine): SQLAlchemy engine.
        hotel_id (str): Local hotel identifier.
        room_type_id (str): Local room type id.
        start_date (date): First day.
        end_date (date): Last day (inclusive).
        updates (RateUpdates | dict): Values to set; at least one must be given.
        trace_id (Optional[str]): Correlation id; generated when omitted.
        pushed_by (Optional[str]): Who requested the push.

    Returns:
        PushResult: Batch and line counts, plus the date range of each failed batch.

    Raises:
        InvalidRequestError: Empty updates or a reversed date range.
        MappingNotFound: The room type is unknown or not linked to a Beds24 room.
        ConnectionNotFound: No active connection for the hotel.
        PreconditionError: The connection is not allowed to write inventory.
    """
    trace_id = trace_id or new_uuid()
    result = PushResult(hotel_id=hotel_id, room_type_id=room_type_id, trace_id=trace_id)
    timer = OperationTimer()
    audit = {"hotel_id": hotel_id, "entity_type": "calendar", "trace_id": trace_id}

    with structlog.contextvars.bound_contextvars(trace_id=trace_id, hotel_id=hotel_id):
        try:
            if end_date < start_date:
                raise InvalidRequestError("end_date must not be before start_date")
            parsed = _coerce_updates(updates)
            connection, remote_room_id = _resolve_target(engine, hotel_id, room_type_id)
        except Beds24Error as e:
            log_audit(
                engine,
                OPERATION,
                AUDIT_ERROR,
                duration_ms=timer.elapsed_ms(),
                error=e,
                metadata={"room_type_id": room_type_id},
                **audit,
            )
            raise

        batches = split_date_range(start_date, end_date, RATE_PUSH_BATCH_DAYS)
        result.batches = len(batches)
        result.lines_total = (end_date - start_date).days + 1

        with engine.begin() as conn:
            result.history_id = create_push_record(
                conn,
                hotel_id=hotel_id,
                room_type_id=room_type_id,
                remote_room_id=remote_room_id,
                start=start_date,
                end=end_date,
                updates=parsed.model_dump(exclude_none=True),
                batches_total=result.batches,
                lines_total=result.lines_total,
                pushed_by=pushed_by,
                trace_id=trace_id,
            )

        batch_results: list[dict[str, Any]] = []
        for batch_start, batch_end in batches:
            days = (batch_end - batch_start).days + 1
            error = _push_batch(
                engine, connection, remote_room_id, build_push_line(batch_start, batch_end, parsed)
            )
            if error is None:
                try:
                    _mirror_locally(engine, hotel_id, room_type_id, batch_start, batch_end, parsed)
                except SQLAlchemyError as e:
                    # Beds24 has the values; the next calendar sync brings them back
                    logger.warning("rate_push_mirror_failed", error=str(e))

            entry = {
                "start": batch_start.isoformat(),
                "end": batch_end.isoformat(),
                "lines": days,
                "success": error is None,
            }
            if error is None:
                result.successful_batches += 1
                result.lines_successful += days
                rate_push_batches.labels(hotel_id=hotel_id, status="success").inc()
            else:
                entry["error"] = error
                result.failed_batches.append(entry)
                rate_push_batches.labels(hotel_id=hotel_id, status="error").inc()
                logger.warning(
                    "rate_push_batch_failed",
                    start=entry["start"],
                    end=entry["end"],
                    error=error,
                )
            batch_results.append(entry)

        if result.successful_batches == result.batches:
            result.status = PUSH_SUCCESS
        elif result.successful_batches == 0:
            result.status = PUSH_ERROR
        else:
            result.status = PUSH_PARTIAL

        summary = None
        if result.failed_batches:
            summary = f"{len(result.failed_batches)} of {result.batches} batches failed"

        with engine.begin() as conn:
            finalize_push_record(
                conn,
                result.history_id,
                status=result.status,
                batches_successful=result.successful_batches,
                lines_successful=result.lines_successful,
                batch_results=batch_results,
                error_message=summary,
            )

        audit_status = {
            PUSH_SUCCESS: AUDIT_SUCCESS,
            PUSH_PARTIAL: AUDIT_PARTIAL,
            PUSH_ERROR: AUDIT_ERROR,
        }[result.status]
        log_audit(
            engine,
            OPERATION,
            audit_status,
            duration_ms=timer.elapsed_ms(),
            records_processed=result.lines_successful,
            error=summary,
            category="partial" if result.status == PUSH_PARTIAL else None,
            metadata={
                "room_type_id": room_type_id,
                "history_id": result.history_id,
                "batches": result.batches,
                "successful_batches": result.successful_batches,
                "failed_batches": result.failed_batches,
            },
            **audit,
        )
        logger.info(
            "rate_push_completed",
            status=result.status,
            batches=result.batches,
            successful_batches=result.successful_batches,
        )
        return result
