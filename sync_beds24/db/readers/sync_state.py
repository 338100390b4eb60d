from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_beds24.models.sync_state import SyncState
from sync_beds24.utils.datetime import ensure_utc


@dataclass(frozen=True)
class SyncStateRecord:
    """Snapshot of one hotel's sync_state row."""

    hotel_id: str
    property_id: str
    bootstrap_completed: bool = False
    bootstrap_started_at: Optional[datetime] = None
    bootstrap_completed_at: Optional[datetime] = None
    last_bookings_modified_from: Optional[datetime] = None
    last_bookings_synced_at: Optional[datetime] = None
    last_calendar_start: Optional[date] = None
    last_calendar_end: Optional[date] = None
    last_calendar_synced_at: Optional[datetime] = None
    sync_enabled: bool = False
    settings: dict[str, Any] = field(default_factory=dict)
    errors_cleared_at: Optional[datetime] = None
    sync_locked_at: Optional[datetime] = None
    sync_lock_owner: Optional[str] = None
    consecutive_failures: int = 0
    backoff_until: Optional[datetime] = None
    created_at: Optional[datetime] = None


def _to_record(row: Any) -> SyncStateRecord:
    return SyncStateRecord(
        hotel_id=row.hotel_id,
        property_id=row.property_id,
        bootstrap_completed=bool(row.bootstrap_completed),
        bootstrap_started_at=ensure_utc(row.bootstrap_started_at),
        bootstrap_completed_at=ensure_utc(row.bootstrap_completed_at),
        last_bookings_modified_from=ensure_utc(row.last_bookings_modified_from),
        last_bookings_synced_at=ensure_utc(row.last_bookings_synced_at),
        last_calendar_start=row.last_calendar_start,
        last_calendar_end=row.last_calendar_end,
        last_calendar_synced_at=ensure_utc(row.last_calendar_synced_at),
        sync_enabled=bool(row.sync_enabled),
        settings=dict(row.settings or {}),
        errors_cleared_at=ensure_utc(row.errors_cleared_at),
        sync_locked_at=ensure_utc(row.sync_locked_at),
        sync_lock_owner=row.sync_lock_owner,
        consecutive_failures=row.consecutive_failures or 0,
        backoff_until=ensure_utc(row.backoff_until),
        created_at=ensure_utc(row.created_at),
    )


def get_sync_state(conn: Connection, hotel_id: str) -> Optional[SyncStateRecord]:
    """
    Fetch the sync state of a hotel.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        hotel_id (str): Local hotel identifier.

    Returns:
        Optional[SyncStateRecord]: State snapshot, or None if the hotel was never bootstrapped.
    """
    row = conn.execute(
        select(SyncState.__table__).where(SyncState.hotel_id == hotel_id)
    ).fetchone()
    return _to_record(row) if row else None


def list_sync_states(conn: Connection, hotel_id: Optional[str] = None) -> list[SyncStateRecord]:
    """List sync states ordered by hotel, optionally restricted to one hotel."""
    stmt = select(SyncState.__table__)
    if hotel_id is not None:
        stmt = stmt.where(SyncState.hotel_id == hotel_id)
    rows = conn.execute(stmt.order_by(SyncState.hotel_id)).fetchall()
    return [_to_record(row) for row in rows]


def list_syncable_hotels(conn: Connection) -> list[SyncStateRecord]:
    """List hotels with bootstrap completed and sync enabled."""
    rows = conn.execute(
        select(SyncState.__table__)
        .where(SyncState.bootstrap_completed.is_(True), SyncState.sync_enabled.is_(True))
        .order_by(SyncState.hotel_id)
    ).fetchall()
    return [_to_record(row) for row in rows]
