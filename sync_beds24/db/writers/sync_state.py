from datetime import date, datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy import or_, update
from sqlalchemy.engine import Connection

from sync_beds24.db.writers._upsert import dialect_insert
from sync_beds24.models.sync_state import SyncState
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def ensure_sync_state(conn: Connection, hotel_id: str, property_id: str) -> None:
    """
    Insert a disabled, not-bootstrapped state row for the hotel if none exists.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        property_id (str): Beds24 property id the hotel binds to.
    """
    now = utc_now()
    stmt = (
        dialect_insert(conn, SyncState)
        .values(
            hotel_id=hotel_id,
            property_id=property_id,
            bootstrap_completed=False,
            sync_enabled=False,
            settings={},
            consecutive_failures=0,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["hotel_id"])
    )
    conn.execute(stmt)


def mark_bootstrap_started(conn: Connection, hotel_id: str, started_at: datetime) -> None:
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(bootstrap_started_at=started_at, updated_at=utc_now())
    )


def complete_bootstrap(
    conn: Connection, hotel_id: str, completed_at: datetime, bookings_cursor: datetime
) -> None:
    """
    Mark bootstrap done, enable sync and seed the booking cursor.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        completed_at (datetime): Completion timestamp.
        bookings_cursor (datetime): Start of the bootstrap run; delta sync picks up from here.
    """
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(
            bootstrap_completed=True,
            bootstrap_completed_at=completed_at,
            sync_enabled=True,
            last_bookings_modified_from=bookings_cursor,
            consecutive_failures=0,
            backoff_until=None,
            updated_at=utc_now(),
        )
    )


def advance_bookings_cursor(conn: Connection, hotel_id: str, new_cursor: datetime) -> bool:
    """
    Move the booking cursor forward. Never moves it backward.

    The comparison happens inside the UPDATE, so a run that computed an older
    cursor than a concurrent run cannot rewind it.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        new_cursor (datetime): Candidate cursor value.

    Returns:
        bool: True if the cursor moved.
    """
    result = conn.execute(
        update(SyncState)
        .where(
            SyncState.hotel_id == hotel_id,
            or_(
                SyncState.last_bookings_modified_from.is_(None),
                SyncState.last_bookings_modified_from < new_cursor,
            ),
        )
        .values(last_bookings_modified_from=new_cursor, updated_at=utc_now())
    )
    return bool(result.rowcount)


def mark_bookings_synced(conn: Connection, hotel_id: str, synced_at: datetime) -> None:
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(last_bookings_synced_at=synced_at, updated_at=utc_now())
    )


def update_sync_settings(conn: Connection, hotel_id: str, settings: dict[str, Any]) -> None:
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(settings=settings, updated_at=utc_now())
    )


def record_calendar_window(
    conn: Connection, hotel_id: str, start: date, end: date, synced_at: datetime
) -> None:
    """Remember the last fully refreshed calendar window (reporting only)."""
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(
            last_calendar_start=start,
            last_calendar_end=end,
            last_calendar_synced_at=synced_at,
            updated_at=utc_now(),
        )
    )


def acquire_sync_lock(
    conn: Connection, hotel_id: str, owner: str, now: datetime, ttl_seconds: int
) -> bool:
    """
    Take the per-hotel sync lock with a compare-and-set on the state row.

    A lock older than ttl_seconds is treated as abandoned and can be taken over.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        owner (str): Unique token identifying this run.
        now (datetime): Current time.
        ttl_seconds (int): Lock lifetime.

    Returns:
        bool: True if this run now holds the lock.
    """
    stale_before = now - timedelta(seconds=ttl_seconds)
    result = conn.execute(
        update(SyncState)
        .where(
            SyncState.hotel_id == hotel_id,
            or_(SyncState.sync_locked_at.is_(None), SyncState.sync_locked_at < stale_before),
        )
        .values(sync_locked_at=now, sync_lock_owner=owner)
    )
    return bool(result.rowcount)


def release_sync_lock(conn: Connection, hotel_id: str, owner: str) -> None:
    """Release the lock if this owner still holds it."""
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id, SyncState.sync_lock_owner == owner)
        .values(sync_locked_at=None, sync_lock_owner=None)
    )


def release_stale_locks(
    conn: Connection, now: datetime, ttl_seconds: int, hotel_id: Optional[str] = None
) -> int:
    """Clear locks older than ttl_seconds. Returns the number released."""
    stmt = update(SyncState).where(
        SyncState.sync_locked_at.is_not(None),
        SyncState.sync_locked_at < now - timedelta(seconds=ttl_seconds),
    )
    if hotel_id is not None:
        stmt = stmt.where(SyncState.hotel_id == hotel_id)
    result = conn.execute(stmt.values(sync_locked_at=None, sync_lock_owner=None))
    return result.rowcount or 0


def record_run_success(conn: Connection, hotel_id: str) -> None:
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(consecutive_failures=0, backoff_until=None)
    )


def record_run_failure(conn: Connection, hotel_id: str, backoff_until: datetime) -> None:
    """Count a retryable failure and defer the hotel's next scheduled run."""
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(
            consecutive_failures=SyncState.consecutive_failures + 1,
            backoff_until=backoff_until,
        )
    )


def rewind_bookings_cursor(
    conn: Connection, hotel_id: str, cursor: Optional[datetime], settings: dict[str, Any]
) -> None:
    """
    Recovery-only cursor write. Unlike advance_bookings_cursor it may move backward.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        hotel_id (str): Local hotel identifier.
        cursor (Optional[datetime]): New cursor; None re-arms the default lookback.
        settings (dict): Replacement settings blob (records nudge bookkeeping).
    """
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(
            last_bookings_modified_from=cursor,
            settings=settings,
            consecutive_failures=0,
            backoff_until=None,
            updated_at=utc_now(),
        )
    )


def reset_sync_cursors(
    conn: Connection, hotel_id: str, resync_from: Optional[datetime] = None
) -> None:
    """
    Clear cursors so the next delta sync re-fetches its full window.

    Bootstrap completion is preserved. Running this twice leaves the same state.
    """
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(
            last_bookings_modified_from=resync_from,
            last_bookings_synced_at=None,
            last_calendar_start=None,
            last_calendar_end=None,
            last_calendar_synced_at=None,
            consecutive_failures=0,
            backoff_until=None,
            updated_at=utc_now(),
        )
    )


def set_errors_cleared(conn: Connection, hotel_id: str, cleared_at: datetime) -> None:
    """Errors logged before cleared_at stop counting toward the hotel's error rate."""
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(errors_cleared_at=cleared_at, updated_at=utc_now())
    )


def reset_bootstrap(conn: Connection, hotel_id: str) -> None:
    """Clear the bootstrap flag and disable sync so bootstrap may be run again."""
    conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(
            bootstrap_completed=False,
            bootstrap_completed_at=None,
            bootstrap_started_at=None,
            sync_enabled=False,
            updated_at=utc_now(),
        )
    )


def set_sync_enabled(conn: Connection, hotel_id: str, enabled: bool) -> bool:
    result = conn.execute(
        update(SyncState)
        .where(SyncState.hotel_id == hotel_id)
        .values(sync_enabled=enabled, updated_at=utc_now())
    )
    return bool(result.rowcount)
