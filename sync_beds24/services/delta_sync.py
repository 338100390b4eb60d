"""
Incremental sync of bookings and calendar for bootstrapped hotels.

Bookings are pulled by modification time from the hotel's cursor. The cursor
only advances past bookings that were written: when a booking fails, the new
cursor stops at that booking's modification time so the next run fetches it
again. Calendar data is refreshed for the whole forward window on every run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_beds24.config import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
    CALENDAR_WINDOW_DAYS,
    DELTA_DEFAULT_LOOKBACK_DAYS,
)
from sync_beds24.db.readers.connections import ConnectionRecord, get_active_connection
from sync_beds24.db.readers.id_map import list_mappings
from sync_beds24.db.readers.sync_state import SyncStateRecord, get_sync_state
from sync_beds24.db.writers.pms import upsert_calendar_days
from sync_beds24.db.writers.sync_state import (
    advance_bookings_cursor,
    mark_bookings_synced,
    record_calendar_window,
    record_run_failure,
    record_run_success,
    update_sync_settings,
)
from sync_beds24.errors import (
    Beds24Error,
    ConnectionNotFound,
    InvalidRequestError,
    NotBootstrapped,
    PreconditionError,
    RateLimitError,
    SyncDisabled,
    error_category,
)
from sync_beds24.metrics import records_synced, sync_duration, sync_runs
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_PARTIAL, AUDIT_SUCCESS
from sync_beds24.models.base import new_uuid
from sync_beds24.models.id_map import EntityKind
from sync_beds24.models.sync_state import CURSOR_HOLD_SETTING, NUDGE_SETTING
from sync_beds24.pollers.bookings import poll_bookings
from sync_beds24.pollers.calendar import poll_calendar
from sync_beds24.schemas.beds24 import RoomCalendarPayload
from sync_beds24.services.audit import OperationTimer, log_audit
from sync_beds24.services.booking_import import apply_booking
from sync_beds24.services.locking import hotel_sync_lock
from sync_beds24.utils.datetime import ensure_utc, iter_days, utc_now

logger = structlog.get_logger(__name__)

OPERATION = "delta_sync"
SCOPES = ("bookings", "calendar", "all")


@dataclass
class SyncResult:
    hotel_id: str
    scope: str
    trace_id: str
    status: str = "success"
    bookings_processed: int = 0
    bookings_created: int = 0
    bookings_updated: int = 0
    guests_created: int = 0
    calendar_days: int = 0
    rooms_skipped: int = 0
    cursor_before: Optional[datetime] = None
    cursor_after: Optional[datetime] = None
    calendar_start: Optional[date] = None
    calendar_end: Optional[date] = None
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def records_processed(self) -> int:
        return self.bookings_processed + self.calendar_days

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("cursor_before", "cursor_after", "calendar_start", "calendar_end"):
            value = data[key]
            data[key] = value.isoformat() if value is not None else None
        return data


def compute_backoff(consecutive_failures: int, error: BaseException, now: datetime) -> datetime:
    """
    Time before which the scheduler should not retry the hotel.

    Exponential in the number of consecutive failures, capped at
    BACKOFF_MAX_SECONDS. A rate-limit error never retries before the credit
    budget resets.

    Args:
        consecutive_failures (int): Failures recorded before this one.
        error (BaseException): The failure being recorded.
        now (datetime): Current time.

    Returns:
        datetime: Earliest time of the next scheduled attempt.
    """
    delay = min(BACKOFF_BASE_SECONDS * (2 ** max(consecutive_failures, 0)), BACKOFF_MAX_SECONDS)
    if isinstance(error, RateLimitError) and error.resets_in:
        delay = max(delay, int(error.resets_in))
    return now + timedelta(seconds=delay)


def _load_state(engine: Engine, hotel_id: str) -> tuple[SyncStateRecord, ConnectionRecord]:
    with engine.connect() as conn:
        state = get_sync_state(conn, hotel_id)
        if state is None or not state.bootstrap_completed:
            raise NotBootstrapped(hotel_id)
        if not state.sync_enabled:
            raise SyncDisabled(hotel_id)
        connection = get_active_connection(conn, hotel_id, state.property_id)
    if connection is None:
        raise ConnectionNotFound(hotel_id, state.property_id)
    return state, connection


def _cursor_settings(
    current: dict[str, Any],
    result: SyncResult,
    held: bool,
    new_cursor: datetime,
    observed: list[datetime],
    now: datetime,
) -> dict[str, Any]:
    """
    Settings blob after a bookings pass.

    A finished pass ends any earlier recovery nudge. While failing records hold
    the cursor back, the hold is counted across runs together with the newest
    modification time seen, so recovery can tell a stuck cursor from a quiet hotel.
    """
    settings = dict(current)
    settings.pop(NUDGE_SETTING, None)
    if not held:
        settings.pop(CURSOR_HOLD_SETTING, None)
        return settings

    previous = settings.get(CURSOR_HOLD_SETTING) or {}
    newest = max(observed) if observed else None
    if previous.get("newest_seen"):
        earlier = datetime.fromisoformat(previous["newest_seen"])
        newest = max(newest, earlier) if newest else earlier
    settings[CURSOR_HOLD_SETTING] = {
        "runs": int(previous.get("runs", 0)) + 1,
        "since": previous.get("since") or now.isoformat(),
        "cursor": new_cursor.isoformat(),
        "newest_seen": newest.isoformat() if newest else None,
        "last_run_at": now.isoformat(),
        "remote_ids": [f["remote_id"] for f in result.failures if f["entity"] == "booking"][:50],
    }
    return settings


def _sync_bookings(
    engine: Engine,
    connection: ConnectionRecord,
    state: SyncStateRecord,
    result: SyncResult,
    now: datetime,
) -> None:
    hotel_id = result.hotel_id
    cursor = state.last_bookings_modified_from
    fetch_from = cursor or now - timedelta(days=DELTA_DEFAULT_LOOKBACK_DAYS)
    result.cursor_before = cursor

    batch = poll_bookings(engine, connection, modified_from=fetch_from)
    result.failures.extend({"entity": "booking", **item} for item in batch.invalid)

    observed: list[datetime] = []
    failed_at: list[datetime] = []
    for booking in batch.bookings:
        if booking.modified_time is not None:
            observed.append(ensure_utc(booking.modified_time))
        try:
            with engine.begin() as conn:
                applied = apply_booking(conn, hotel_id, booking)
        except (SQLAlchemyError, ValueError, PreconditionError) as e:
            result.failures.append(
                {
                    "entity": "booking",
                    "remote_id": str(booking.id),
                    "error": str(e),
                }
            )
            failed_at.append(ensure_utc(booking.modified_time) or fetch_from)
            continue

        result.bookings_processed += 1
        if applied.created:
            result.bookings_created += 1
        else:
            result.bookings_updated += 1
        if applied.guest_created:
            result.guests_created += 1

    new_cursor = max(observed) if observed else fetch_from
    if batch.invalid:
        # Unparseable records carry no usable modification time
        new_cursor = fetch_from
    elif failed_at:
        new_cursor = min(new_cursor, min(failed_at))

    held = bool(batch.invalid or failed_at)
    settings = _cursor_settings(state.settings, result, held, new_cursor, observed, now)
    with engine.begin() as conn:
        advance_bookings_cursor(conn, hotel_id, new_cursor)
        mark_bookings_synced(conn, hotel_id, now)
        update_sync_settings(conn, hotel_id, settings)
    if held:
        logger.warning(
            "bookings_cursor_held",
            cursor=new_cursor.isoformat(),
            runs=settings[CURSOR_HOLD_SETTING]["runs"],
        )
    result.cursor_after = max(new_cursor, cursor) if cursor else new_cursor

    records_synced.labels(hotel_id=hotel_id, entity_type="bookings").inc(
        result.bookings_processed
    )
    records_synced.labels(hotel_id=hotel_id, entity_type="guests").inc(result.guests_created)


def calendar_rows(
    hotel_id: str, room_type_id: str, room: RoomCalendarPayload, start: date, end: date
) -> list[dict[str, Any]]:
    """
    Expand Beds24 calendar ranges into one row per day, clipped to [start, end].

    Args:
        hotel_id (str): Local hotel identifier.
        room_type_id (str): Local room type id.
        room (RoomCalendarPayload): Calendar ranges of one room.
        start (date): First day kept.
        end (date): Last day kept (inclusive).

    Returns:
        list[dict]: calendar_days rows; a later range wins for overlapping days.
    """
    by_day: dict[date, dict[str, Any]] = {}
    for entry in room.calendar:
        first = max(entry.from_date, start)
        last = min(entry.to_date or entry.from_date, end)
        for day in iter_days(first, last):
            by_day[day] = {
                "hotel_id": hotel_id,
                "room_type_id": room_type_id,
                "day": day,
                "available": entry.num_avail,
                "rate": entry.price1,
                "min_stay": entry.min_stay,
                "max_stay": entry.max_stay,
                "stop_sell": entry.stop_sell,
                "closed_arrival": entry.closed_arrival,
                "closed_departure": entry.closed_departure,
            }
    return [by_day[day] for day in sorted(by_day)]


def _sync_calendar(
    engine: Engine, connection: ConnectionRecord, result: SyncResult, now: datetime
) -> None:
    hotel_id = result.hotel_id
    start = now.date()
    end = start + timedelta(days=CALENDAR_WINDOW_DAYS)
    result.calendar_start, result.calendar_end = start, end

    with engine.connect() as conn:
        rooms = list_mappings(conn, hotel_id, EntityKind.ROOM)
    if not rooms:
        logger.info("calendar_no_rooms", hotel_id=hotel_id)

    calendars = poll_calendar(engine, connection, sorted(rooms), start, end)
    for room in calendars:
        room_type_id = rooms.get(str(room.room_id))
        if room_type_id is None:
            result.rooms_skipped += 1
            continue
        rows = calendar_rows(hotel_id, room_type_id, room, start, end)
        try:
            with engine.begin() as conn:
                result.calendar_days += upsert_calendar_days(conn, rows)
        except SQLAlchemyError as e:
            result.failures.append(
                {"entity": "calendar", "remote_id": str(room.room_id), "error": str(e)}
            )

    with engine.begin() as conn:
        record_calendar_window(conn, hotel_id, start, end, now)
    records_synced.labels(hotel_id=hotel_id, entity_type="calendar_days").inc(
        result.calendar_days
    )


def delta_sync(
    engine: Engine,
    hotel_id: str,
    scope: str = "all",
    trace_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SyncResult:
    """
    Pull bookings and/or calendar changes for one bootstrapped hotel.

    Per-entity failures do not abort the run; they come back in
    SyncResult.failures with status "partial". Exactly one terminal audit entry
    is written per invocation.

    Args:
        engine (Engine): SQLAlchemy engine.
        hotel_id (str): Local hotel identifier.
        scope (str): "bookings", "calendar" or "all".
        trace_id (Optional[str]): Correlation id; generated when omitted.
        now (Optional[datetime]): Current time override, used by tests.

    Returns:
        SyncResult: Counts, cursor movement and per-entity failures.

    Raises:
        InvalidRequestError: Unknown scope.
        NotBootstrapped: The hotel has no completed bootstrap. No remote call is made.
        SyncDisabled: Sync is turned off for the hotel.
        ConnectionNotFound: No active connection for the hotel.
        SyncInProgress: Another run holds the hotel's sync lock.
        Beds24Error: A failure that stopped the whole run.
    """
    if scope not in SCOPES:
        raise InvalidRequestError(f"Unknown sync scope: {scope}", scope=scope)

    trace_id = trace_id or new_uuid()
    now = now or utc_now()
    result = SyncResult(hotel_id=hotel_id, scope=scope, trace_id=trace_id)
    timer = OperationTimer()
    audit = {"hotel_id": hotel_id, "entity_type": scope, "trace_id": trace_id}

    with structlog.contextvars.bound_contextvars(trace_id=trace_id, hotel_id=hotel_id):
        logger.info("delta_sync_started", scope=scope)
        try:
            with sync_duration.labels(hotel_id=hotel_id, scope=scope).time():
                _load_state(engine, hotel_id)
                with hotel_sync_lock(engine, hotel_id):
                    # Read the cursor under the lock so a finished concurrent run is seen
                    state, connection = _load_state(engine, hotel_id)
                    try:
                        if scope in ("bookings", "all"):
                            _sync_bookings(engine, connection, state, result, now)
                        if scope in ("calendar", "all"):
                            _sync_calendar(engine, connection, result, now)
                    except Beds24Error as e:
                        if e.retryable:
                            backoff_until = compute_backoff(state.consecutive_failures, e, now)
                            with engine.begin() as conn:
                                record_run_failure(conn, hotel_id, backoff_until)
                            logger.warning(
                                "delta_sync_backoff",
                                backoff_until=backoff_until.isoformat(),
                                failures=state.consecutive_failures + 1,
                            )
                        raise
                    with engine.begin() as conn:
                        record_run_success(conn, hotel_id)
        except Exception as e:
            result.status = "error"
            sync_runs.labels(hotel_id=hotel_id, scope=scope, status="error").inc()
            log_audit(
                engine,
                OPERATION,
                AUDIT_ERROR,
                duration_ms=timer.elapsed_ms(),
                records_processed=result.records_processed,
                error=e,
                metadata={"scope": scope, "failures": result.failures[:50]},
                **audit,
            )
            logger.error("delta_sync_failed", error=str(e), category=error_category(e))
            raise

        result.status = "partial" if result.failures else "success"
        sync_runs.labels(hotel_id=hotel_id, scope=scope, status=result.status).inc()
        log_audit(
            engine,
            OPERATION,
            AUDIT_PARTIAL if result.failures else AUDIT_SUCCESS,
            duration_ms=timer.elapsed_ms(),
            records_processed=result.records_processed,
            error=f"{len(result.failures)} entities failed" if result.failures else None,
            category="partial" if result.failures else None,
            metadata={
                "scope": scope,
                "cursor_before": result.cursor_before.isoformat()
                if result.cursor_before
                else None,
                "cursor_after": result.cursor_after.isoformat() if result.cursor_after else None,
                "failures": result.failures[:50],
            },
            **audit,
        )
        logger.info(
            "delta_sync_completed",
            status=result.status,
            bookings=result.bookings_processed,
            calendar_days=result.calendar_days,
            failures=len(result.failures),
        )
        return result
