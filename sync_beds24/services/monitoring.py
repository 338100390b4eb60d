"""Read-only views over health, audit history and sync state for operators."""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.engine import Engine

from sync_beds24.db.readers.audit_log import AuditRecord, list_audit_entries
from sync_beds24.db.readers.connections import list_connections
from sync_beds24.db.readers.pms import count_bookings
from sync_beds24.db.readers.sync_state import list_sync_states
from sync_beds24.errors import InvalidRequestError
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_PARTIAL, AUDIT_SUCCESS
from sync_beds24.services.health import assess_health
from sync_beds24.utils.datetime import utc_now

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

TERMINAL = (AUDIT_SUCCESS, AUDIT_ERROR, AUDIT_PARTIAL)


def window_start(time_range: str, now: datetime) -> datetime:
    try:
        return now - TIME_RANGES[time_range]
    except KeyError:
        raise InvalidRequestError(
            f"Unknown time range: {time_range}", allowed=sorted(TIME_RANGES)
        ) from None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def health_overview(
    engine: Engine, hotel_id: Optional[str] = None, now: Optional[datetime] = None
) -> dict[str, Any]:
    """System status, the issue list and aggregate numbers."""
    report = assess_health(engine, hotel_id=hotel_id, now=now)
    return report.to_dict()


def performance_metrics(
    engine: Engine,
    time_range: str = "24h",
    hotel_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Per-operation counts, average latency, success rate and API cost over a window.

    Args:
        engine (Engine): SQLAlchemy engine.
        time_range (str): One of 1h, 24h, 7d, 30d.
        hotel_id (Optional[str]): Restrict to one hotel.
        now (Optional[datetime]): Window end, used by tests.

    Returns:
        dict: {"time_range", "since", "operations": {...}, "totals": {...}}
    """
    now = now or utc_now()
    since = window_start(time_range, now)
    with engine.connect() as conn:
        entries = list_audit_entries(conn, since=since, hotel_id=hotel_id)

    grouped: dict[str, list[AuditRecord]] = defaultdict(list)
    for entry in entries:
        if entry.status in TERMINAL:
            grouped[entry.operation].append(entry)

    operations = {}
    total = succeeded = 0
    api_cost = 0.0
    for operation, group in sorted(grouped.items()):
        durations = [e.duration_ms for e in group if e.duration_ms is not None]
        successes = sum(1 for e in group if e.status == AUDIT_SUCCESS)
        cost = sum(e.request_cost or 0.0 for e in group)
        operations[operation] = {
            "count": len(group),
            "success": successes,
            "partial": sum(1 for e in group if e.status == AUDIT_PARTIAL),
            "error": sum(1 for e in group if e.status == AUDIT_ERROR),
            "success_rate": round(successes / len(group), 4),
            "avg_duration_ms": round(sum(durations) / len(durations), 1) if durations else None,
            "records_processed": sum(e.records_processed or 0 for e in group),
            "api_cost": cost,
        }
        total += len(group)
        succeeded += successes
        api_cost += cost

    return {
        "time_range": time_range,
        "since": since.isoformat(),
        "operations": operations,
        "totals": {
            "count": total,
            "success_rate": round(succeeded / total, 4) if total else None,
            "api_cost": api_cost,
        },
    }


def error_analysis(
    engine: Engine,
    time_range: str = "24h",
    hotel_id: Optional[str] = None,
    now: Optional[datetime] = None,
    limit: int = 20,
) -> dict[str, Any]:
    """Failures in the window grouped by category and operation, plus the latest ones."""
    now = now or utc_now()
    since = window_start(time_range, now)
    with engine.connect() as conn:
        entries = list_audit_entries(conn, since=since, hotel_id=hotel_id)

    failures = [e for e in entries if e.status in (AUDIT_ERROR, AUDIT_PARTIAL)]
    by_category = Counter(e.error_category or "unknown" for e in failures)
    by_operation = Counter(e.operation for e in failures)
    return {
        "time_range": time_range,
        "since": since.isoformat(),
        "total": len(failures),
        "by_category": dict(by_category),
        "by_operation": dict(by_operation),
        "recent": [
            {
                "operation": e.operation,
                "status": e.status,
                "hotel_id": e.hotel_id,
                "category": e.error_category,
                "message": e.error_message,
                "trace_id": e.trace_id,
                "created_at": e.created_at.isoformat(),
            }
            for e in failures[:limit]
        ],
    }


def sync_status(engine: Engine, hotel_id: Optional[str] = None) -> dict[str, Any]:
    """Per-hotel sync detail plus summary counts."""
    with engine.connect() as conn:
        states = list_sync_states(conn, hotel_id=hotel_id)
        connections = {c.hotel_id: c for c in list_connections(conn, hotel_id=hotel_id)}
        bookings = {s.hotel_id: count_bookings(conn, s.hotel_id) for s in states}

    hotels = []
    for state in states:
        connection = connections.get(state.hotel_id)
        hotels.append(
            {
                "hotel_id": state.hotel_id,
                "property_id": state.property_id,
                "bootstrap_completed": state.bootstrap_completed,
                "bootstrap_completed_at": _iso(state.bootstrap_completed_at),
                "sync_enabled": state.sync_enabled,
                "bookings_cursor": _iso(state.last_bookings_modified_from),
                "last_bookings_synced_at": _iso(state.last_bookings_synced_at),
                "last_calendar_synced_at": _iso(state.last_calendar_synced_at),
                "calendar_window": {
                    "start": state.last_calendar_start.isoformat()
                    if state.last_calendar_start
                    else None,
                    "end": state.last_calendar_end.isoformat() if state.last_calendar_end else None,
                },
                "sync_locked": state.sync_locked_at is not None,
                "consecutive_failures": state.consecutive_failures,
                "backoff_until": _iso(state.backoff_until),
                "connection_status": connection.status if connection else None,
                "bookings": bookings.get(state.hotel_id, 0),
            }
        )

    return {
        "hotels": hotels,
        "summary": {
            "total": len(states),
            "bootstrapped": sum(1 for s in states if s.bootstrap_completed),
            "enabled": sum(1 for s in states if s.sync_enabled),
            "in_backoff": sum(1 for s in states if s.backoff_until is not None),
            "locked": sum(1 for s in states if s.sync_locked_at is not None),
        },
    }
