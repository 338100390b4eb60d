from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_beds24.models.rate_push_history import RatePushHistory


def get_push_record(conn: Connection, record_id: str) -> Optional[dict[str, Any]]:
    row = conn.execute(
        select(RatePushHistory.__table__).where(RatePushHistory.id == record_id)
    ).fetchone()
    return dict(row._mapping) if row else None


def list_push_records(
    conn: Connection, since: datetime, hotel_id: Optional[str] = None
) -> list[dict[str, Any]]:
    """Push history rows created since the given time, newest first."""
    stmt = select(RatePushHistory.__table__).where(RatePushHistory.created_at >= since)
    if hotel_id is not None:
        stmt = stmt.where(RatePushHistory.hotel_id == hotel_id)
    rows = conn.execute(stmt.order_by(RatePushHistory.created_at.desc())).fetchall()
    return [dict(row._mapping) for row in rows]
