"""
One-time initial import of a Beds24 property into a hotel.

Imports room types first so bookings can resolve their room, then every
booking arriving within the lookback window. Bootstrap is all or nothing from
the caller's point of view: the completion flag is only set when every entity
was written. Entities that did make it stay written and mapped, so a retry
picks up where the failed run stopped without duplicating anything.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_beds24.config import BOOTSTRAP_LOOKBACK_DAYS
from sync_beds24.db.readers.connections import get_active_connection
from sync_beds24.db.readers.sync_state import get_sync_state
from sync_beds24.db.writers.sync_state import (
    complete_bootstrap,
    ensure_sync_state,
    mark_bootstrap_started,
)
from sync_beds24.errors import (
    AlreadyBootstrapped,
    ConnectionNotFound,
    PartialFailure,
    PreconditionError,
    error_category,
)
from sync_beds24.metrics import records_synced, sync_duration, sync_runs
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_STARTED, AUDIT_SUCCESS
from sync_beds24.models.base import new_uuid
from sync_beds24.pollers.bookings import poll_bookings
from sync_beds24.pollers.property import poll_property
from sync_beds24.services.audit import OperationTimer, log_audit
from sync_beds24.services.booking_import import apply_booking, apply_room_type
from sync_beds24.services.locking import hotel_sync_lock
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

OPERATION = "bootstrap"


@dataclass
class BootstrapResult:
    hotel_id: str
    property_id: str
    trace_id: str
    status: str = "success"
    room_types_created: int = 0
    bookings_created: int = 0
    bookings_updated: int = 0
    guests_created: int = 0
    completed_at: Optional[datetime] = None
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {
            "room_types_created": self.room_types_created,
            "bookings_created": self.bookings_created,
            "bookings_updated": self.bookings_updated,
            "guests_created": self.guests_created,
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return data


def _check_preconditions(engine: Engine, hotel_id: str, property_id: str) -> None:
    with engine.connect() as conn:
        state = get_sync_state(conn, hotel_id)
    if state is None:
        return
    if state.bootstrap_completed:
        raise AlreadyBootstrapped(hotel_id, state.bootstrap_completed_at)
    if state.property_id != property_id:
        raise PreconditionError(
            f"Hotel {hotel_id} is bound to Beds24 property {state.property_id}",
            hotel_id=hotel_id,
            property_id=property_id,
        )


def _import(engine: Engine, result: BootstrapResult, started_at: datetime) -> None:
    hotel_id = result.hotel_id
    with engine.connect() as conn:
        connection = get_active_connection(conn, hotel_id, result.property_id)
    if connection is None:
        raise ConnectionNotFound(hotel_id, result.property_id)

    with engine.begin() as conn:
        ensure_sync_state(conn, hotel_id, result.property_id)

    with hotel_sync_lock(engine, hotel_id):
        # Re-check under the lock: a concurrent bootstrap may have just finished
        _check_preconditions(engine, hotel_id, result.property_id)

        with engine.begin() as conn:
            mark_bootstrap_started(conn, hotel_id, started_at)

        prop = poll_property(engine, connection)
        for room in prop.room_types:
            try:
                with engine.begin() as conn:
                    if apply_room_type(conn, hotel_id, room):
                        result.room_types_created += 1
            except (SQLAlchemyError, PreconditionError) as e:
                result.failures.append(
                    {"entity": "room_type", "remote_id": str(room.id), "error": str(e)}
                )

        arrival_from = (started_at - timedelta(days=BOOTSTRAP_LOOKBACK_DAYS)).date()
        batch = poll_bookings(engine, connection, arrival_from=arrival_from)
        result.failures.extend({"entity": "booking", **item} for item in batch.invalid)

        for booking in batch.bookings:
            try:
                with engine.begin() as conn:
                    applied = apply_booking(conn, hotel_id, booking)
            except (SQLAlchemyError, ValueError, PreconditionError) as e:
                result.failures.append(
                    {"entity": "booking", "remote_id": str(booking.id), "error": str(e)}
                )
                continue
            if applied.created:
                result.bookings_created += 1
            else:
                result.bookings_updated += 1
            if applied.guest_created:
                result.guests_created += 1

        records_synced.labels(hotel_id=hotel_id, entity_type="room_types").inc(
            result.room_types_created
        )
        records_synced.labels(hotel_id=hotel_id, entity_type="bookings").inc(
            result.bookings_created + result.bookings_updated
        )
        records_synced.labels(hotel_id=hotel_id, entity_type="guests").inc(result.guests_created)

        if result.failures:
            raise PartialFailure(
                f"Bootstrap of hotel {hotel_id} left {len(result.failures)} entities unwritten",
                failures=result.failures,
                counts=result.counts,
            )

        completed_at = utc_now()
        with engine.begin() as conn:
            # Delta sync resumes from the moment the import started reading
            complete_bootstrap(conn, hotel_id, completed_at, bookings_cursor=started_at)
        result.completed_at = completed_at


def bootstrap_property(
    engine: Engine,
    hotel_id: str,
    property_id: str,
    trace_id: Optional[str] = None,
    initiated_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BootstrapResult:
    """
    Import a Beds24 property's room types and bookings into a hotel.

    Every invocation writes a "started" and a terminal audit entry, including
    invocations refused by a precondition.

    Args:
        engine (Engine): SQLAlchemy engine.
        hotel_id (str): Local hotel identifier.
        property_id (str): Beds24 property id.
        trace_id (Optional[str]): Correlation id; generated when omitted.
        initiated_by (Optional[str]): Who asked for the bootstrap.
        now (Optional[datetime]): Start time override, used by tests.

    Returns:
        BootstrapResult: Counts and completion time.

    Raises:
        AlreadyBootstrapped: The hotel finished bootstrap before. No remote call is made.
        ConnectionNotFound: No active connection for the hotel and property.
        SyncInProgress: Another run holds the hotel's sync lock.
        PartialFailure: Some entities failed; the hotel stays not bootstrapped.
    """
    trace_id = trace_id or new_uuid()
    started_at = now or utc_now()
    result = BootstrapResult(hotel_id=hotel_id, property_id=property_id, trace_id=trace_id)
    timer = OperationTimer()
    audit = {
        "hotel_id": hotel_id,
        "entity_type": "property",
        "trace_id": trace_id,
    }

    with structlog.contextvars.bound_contextvars(trace_id=trace_id, hotel_id=hotel_id):
        logger.info("bootstrap_started", property_id=property_id, initiated_by=initiated_by)
        log_audit(
            engine,
            OPERATION,
            AUDIT_STARTED,
            metadata={"property_id": property_id, "initiated_by": initiated_by},
            **audit,
        )

        try:
            with sync_duration.labels(hotel_id=hotel_id, scope=OPERATION).time():
                _check_preconditions(engine, hotel_id, property_id)
                _import(engine, result, started_at)
        except Exception as e:
            result.status = "error"
            category = error_category(e)
            sync_runs.labels(hotel_id=hotel_id, scope=OPERATION, status="error").inc()
            log_audit(
                engine,
                OPERATION,
                AUDIT_ERROR,
                duration_ms=timer.elapsed_ms(),
                records_processed=result.bookings_created + result.bookings_updated,
                error=e,
                metadata={
                    "property_id": property_id,
                    "counts": result.counts,
                    "failures": result.failures[:50],
                },
                **audit,
            )
            logger.error("bootstrap_failed", error=str(e), category=category)
            raise

        sync_runs.labels(hotel_id=hotel_id, scope=OPERATION, status="success").inc()
        log_audit(
            engine,
            OPERATION,
            AUDIT_SUCCESS,
            duration_ms=timer.elapsed_ms(),
            records_processed=result.bookings_created + result.bookings_updated,
            metadata={"property_id": property_id, "counts": result.counts},
            **audit,
        )
        logger.info("bootstrap_completed", **result.counts)
        return result
