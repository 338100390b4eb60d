"""
Scheduler entry points: run delta syncs for one hotel or fan out over all.

Fan-out runs on a bounded thread pool. Different hotels share no mutable state;
runs for the same hotel are serialized by the sync lock inside delta_sync.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from sync_beds24.config import (
    BOOKINGS_SYNC_INTERVAL_MINUTES,
    CALENDAR_SYNC_INTERVAL_MINUTES,
    CREDIT_LOW_WATERMARK,
    SCHEDULER_MAX_WORKERS,
)
from sync_beds24.db.readers.audit_log import latest_credit_entry
from sync_beds24.db.readers.sync_state import SyncStateRecord, list_syncable_hotels
from sync_beds24.errors import InvalidRequestError, error_category
from sync_beds24.metrics import sync_runs
from sync_beds24.services.delta_sync import SCOPES, SyncResult, delta_sync
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

# Five-minute credit budget; older readings say nothing about the current one
CREDIT_WINDOW = timedelta(minutes=5)


def _summarize(sync_type: str, results: list[dict[str, Any]], **extra: Any) -> dict[str, Any]:
    return {
        "sync_type": sync_type,
        "hotels": len(results),
        "succeeded": sum(1 for r in results if r["status"] == "success"),
        "partial": sum(1 for r in results if r["status"] == "partial"),
        "failed": sum(1 for r in results if r["status"] == "error"),
        "bookings_processed": sum(r.get("bookings_processed", 0) for r in results),
        "calendar_days": sum(r.get("calendar_days", 0) for r in results),
        "results": results,
        **extra,
    }


def _result_dict(result: SyncResult) -> dict[str, Any]:
    return {
        "hotel_id": result.hotel_id,
        "scope": result.scope,
        "status": result.status,
        "trace_id": result.trace_id,
        "bookings_processed": result.bookings_processed,
        "calendar_days": result.calendar_days,
        "failures": len(result.failures),
    }


def _run_many(engine: Engine, jobs: list[tuple[str, str]], now: datetime) -> list[dict[str, Any]]:
    """Run (hotel_id, scope) jobs concurrently; one hotel's failure never stops the others."""
    results: list[dict[str, Any]] = []
    if not jobs:
        return results

    with ThreadPoolExecutor(max_workers=SCHEDULER_MAX_WORKERS) as pool:
        futures = {
            pool.submit(delta_sync, engine, hotel_id, scope, None, now): (hotel_id, scope)
            for hotel_id, scope in jobs
        }
        for future in as_completed(futures):
            hotel_id, scope = futures[future]
            try:
                results.append(_result_dict(future.result()))
            except Exception as e:
                logger.error(
                    "hotel_sync_failed",
                    hotel_id=hotel_id,
                    scope=scope,
                    category=error_category(e),
                    error=str(e),
                )
                results.append(
                    {
                        "hotel_id": hotel_id,
                        "scope": scope,
                        "status": "error",
                        "category": error_category(e),
                        "error": str(e),
                    }
                )
    return sorted(results, key=lambda r: r["hotel_id"])


def manual_trigger(
    engine: Engine,
    sync_type: str = "all",
    hotel_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Run a delta sync now, for one hotel or every enabled and bootstrapped hotel.

    With a hotel_id the sync's own errors propagate to the caller. Without one,
    errors are collected per hotel.

    Args:
        engine (Engine): SQLAlchemy engine.
        sync_type (str): "all", "bookings" or "calendar".
        hotel_id (Optional[str]): Hotel to sync; all eligible hotels when None.
        trace_id (Optional[str]): Correlation id for a single-hotel run.

    Returns:
        dict: Per-hotel results and aggregate counts.
    """
    if sync_type not in SCOPES:
        raise InvalidRequestError(f"Unknown sync type: {sync_type}", sync_type=sync_type)

    if hotel_id is not None:
        result = delta_sync(engine, hotel_id, scope=sync_type, trace_id=trace_id)
        return _summarize(sync_type, [_result_dict(result)])

    with engine.connect() as conn:
        hotels = [s.hotel_id for s in list_syncable_hotels(conn)]
    logger.info("manual_trigger_fanout", sync_type=sync_type, hotels=len(hotels))

    results = _run_many(engine, [(h, sync_type) for h in hotels], utc_now())
    return _summarize(sync_type, results)


def due_scope(state: SyncStateRecord, now: datetime) -> Optional[str]:
    """Scope whose minimum interval has elapsed for the hotel, or None when nothing is due."""

    def due(last: Optional[datetime], minutes: int) -> bool:
        return last is None or now - last >= timedelta(minutes=minutes)

    bookings = due(state.last_bookings_synced_at, BOOKINGS_SYNC_INTERVAL_MINUTES)
    calendar = due(state.last_calendar_synced_at, CALENDAR_SYNC_INTERVAL_MINUTES)
    if bookings and calendar:
        return "all"
    if bookings:
        return "bookings"
    if calendar:
        return "calendar"
    return None


def skip_reason(engine: Engine, state: SyncStateRecord, now: datetime) -> Optional[str]:
    """Why the hotel should sit out this tick, if it should."""
    if state.backoff_until and state.backoff_until > now:
        return "backoff"
    with engine.connect() as conn:
        entry = latest_credit_entry(conn, state.hotel_id, now - CREDIT_WINDOW)
    if entry is not None and entry.limit_remaining is not None:
        resets_at = entry.created_at + timedelta(seconds=entry.limit_resets_in or 0)
        if entry.limit_remaining < CREDIT_LOW_WATERMARK and resets_at > now:
            return "low_credit"
    return None


def run_scheduled(engine: Engine, now: Optional[datetime] = None) -> dict[str, Any]:
    """
    One scheduler tick: sync every eligible hotel whose interval has elapsed.

    Hotels in backoff or with a nearly exhausted credit budget are deferred to a
    later tick rather than retried here.

    Args:
        engine (Engine): SQLAlchemy engine.
        now (Optional[datetime]): Tick time, used by tests.

    Returns:
        dict: Per-hotel results, aggregate counts and skipped hotels with reasons.
    """
    now = now or utc_now()
    with engine.connect() as conn:
        states = list_syncable_hotels(conn)

    jobs: list[tuple[str, str]] = []
    skipped: list[dict[str, str]] = []
    for state in states:
        reason = skip_reason(engine, state, now)
        scope = due_scope(state, now) if reason is None else None
        if reason is None and scope is None:
            reason = "not_due"
        if reason is not None:
            skipped.append({"hotel_id": state.hotel_id, "reason": reason})
            if reason != "not_due":
                sync_runs.labels(hotel_id=state.hotel_id, scope="all", status="skipped").inc()
            continue
        jobs.append((state.hotel_id, scope))

    logger.info("scheduled_tick", due=len(jobs), skipped=len(skipped))
    results = _run_many(engine, jobs, now)
    return _summarize("scheduled", results, skipped=skipped)
