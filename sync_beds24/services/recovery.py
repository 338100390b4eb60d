"""
Automatic and operator-driven recovery actions.

auto_recovery acts on what assess_health reports, least disruptive fix first:
a token refresh before dropping cached tokens (a credential rejected twice
disables its connection), a cursor nudge before a full cursor reset, and
skipping records that hold the cursor back only once they have done so for
several runs. manual_recovery exposes the same primitives directly. Every
primitive is idempotent, so running one twice leaves the same state.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from sync_beds24.cache import token_cache
from sync_beds24.config import CURSOR_NUDGE_HOURS, SYNC_LOCK_TTL_SECONDS
from sync_beds24.db.readers.connections import READ_TOKEN, WRITE_TOKEN, list_connections
from sync_beds24.db.readers.id_map import find_orphaned_mappings
from sync_beds24.db.readers.sync_state import get_sync_state, list_sync_states
from sync_beds24.db.writers.connections import (
    clear_expired_token_caches,
    clear_token_caches,
    disable_connection,
)
from sync_beds24.db.writers.id_map import delete_mappings
from sync_beds24.db.writers.sync_state import (
    release_stale_locks,
    reset_bootstrap,
    reset_sync_cursors,
    rewind_bookings_cursor,
    set_errors_cleared,
)
from sync_beds24.errors import AuthError, CredentialExpiredError, InvalidRequestError
from sync_beds24.metrics import recovery_actions
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_SUCCESS
from sync_beds24.models.connections import CONNECTION_ERROR
from sync_beds24.models.sync_state import CURSOR_HOLD_SETTING, NUDGE_SETTING
from sync_beds24.network.auth import refresh_access_token
from sync_beds24.services.audit import OperationTimer, log_audit
from sync_beds24.services.health import (
    ISSUE_EXPIRED_TOKEN,
    ISSUE_STALE_SYNC,
    ISSUE_STUCK_CURSOR,
    ISSUE_STUCK_LOCK,
    HealthIssue,
    assess_health,
)
from sync_beds24.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

APPLIED = "applied"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class RecoveryAction:
    action: str
    outcome: str
    hotel_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class RecoveryReport:
    mode: str
    hotel_id: Optional[str] = None
    status_before: Optional[str] = None
    status_after: Optional[str] = None
    issues: list[dict[str, Any]] = field(default_factory=list)
    actions: list[RecoveryAction] = field(default_factory=list)

    def record(self, action: RecoveryAction) -> None:
        self.actions.append(action)
        recovery_actions.labels(action=action.action, outcome=action.outcome).inc()
        logger.info(
            "recovery_action",
            action=action.action,
            outcome=action.outcome,
            hotel_id=action.hotel_id,
            **action.details,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RecoveryOptions:
    hotel_id: Optional[str] = None
    reset_tokens: bool = False
    clear_errors: bool = False
    reset_sync_state: bool = False
    resync_from: Optional[date] = None
    repair_data_integrity: bool = False
    force_bootstrap: bool = False

    def selected(self) -> list[str]:
        names = [
            "reset_tokens",
            "clear_errors",
            "reset_sync_state",
            "repair_data_integrity",
            "force_bootstrap",
        ]
        return [name for name in names if getattr(self, name)]


# =============================================================================
# Primitives
# =============================================================================


def reset_tokens(engine: Engine, hotel_id: Optional[str] = None) -> RecoveryAction:
    """Drop cached access tokens (database and in-process) so the next call refreshes."""
    with engine.begin() as conn:
        connections = list_connections(conn, hotel_id=hotel_id)
        count = clear_token_caches(conn, hotel_id=hotel_id)
    for connection in connections:
        token_cache.invalidate(connection.id)
    return RecoveryAction("reset_tokens", APPLIED, hotel_id, {"connections": count})


def refresh_tokens(engine: Engine, hotel_id: str) -> RecoveryAction:
    """
    Try a fresh token exchange for every failing connection of the hotel.

    A connection lands here after Beds24 already rejected its credential once.
    If the refresh token is rejected again the failure is persistent and the
    connection is disabled (never deleted) until an operator sets it up again.
    Token endpoint outages leave the connection as it is.
    """
    with engine.connect() as conn:
        connections = [
            c for c in list_connections(conn, hotel_id=hotel_id) if c.status == CONNECTION_ERROR
        ]

    refreshed: list[str] = []
    disabled: list[str] = []
    errors: list[str] = []
    for connection in connections:
        token_types = [READ_TOKEN]
        if connection.write_secret_name:
            token_types.append(WRITE_TOKEN)
        try:
            for token_type in token_types:
                refresh_access_token(engine, connection, token_type)
            refreshed.append(connection.id)
        except CredentialExpiredError as e:
            with engine.begin() as conn:
                disable_connection(conn, connection.hotel_id, connection.property_id)
            token_cache.invalidate(connection.id)
            disabled.append(connection.id)
            errors.append(f"{connection.id}: {e.message}")
            logger.warning(
                "connection_disabled_after_auth_failure",
                connection_id=connection.id,
                hotel_id=connection.hotel_id,
                error=e.message,
            )
        except AuthError as e:
            errors.append(f"{connection.id}: {e.message}")

    outcome = FAILED if errors else APPLIED
    return RecoveryAction(
        "refresh_tokens",
        outcome,
        hotel_id,
        {"refreshed": refreshed, "disabled": disabled, "errors": errors},
    )


def clear_errors(engine: Engine, hotel_id: Optional[str], now: datetime) -> RecoveryAction:
    """Move the errors-cleared watermark so past failures stop counting."""
    with engine.begin() as conn:
        hotels = [s.hotel_id for s in list_sync_states(conn, hotel_id=hotel_id)]
        for hotel in hotels:
            set_errors_cleared(conn, hotel, now)
    return RecoveryAction("clear_errors", APPLIED, hotel_id, {"hotels": len(hotels)})


def reset_sync_state(
    engine: Engine, hotel_id: Optional[str], resync_from: Optional[date] = None
) -> RecoveryAction:
    """Clear cursors so the next delta sync re-fetches its window (or from resync_from)."""
    cursor = None
    if resync_from is not None:
        cursor = datetime.combine(resync_from, time.min, tzinfo=timezone.utc)
    with engine.begin() as conn:
        hotels = [s.hotel_id for s in list_sync_states(conn, hotel_id=hotel_id)]
        for hotel in hotels:
            reset_sync_cursors(conn, hotel, resync_from=cursor)
    return RecoveryAction(
        "reset_sync_state",
        APPLIED,
        hotel_id,
        {"hotels": len(hotels), "resync_from": cursor.isoformat() if cursor else None},
    )


def nudge_cursor(engine: Engine, hotel_id: str, now: datetime) -> RecoveryAction:
    """
    Rewind the booking cursor by CURSOR_NUDGE_HOURS and clear any backoff.

    The nudge is remembered in the hotel's settings; a hotel that is still
    stale after a nudge gets a full cursor reset instead.
    """
    with engine.begin() as conn:
        state = get_sync_state(conn, hotel_id)
        if state is None:
            return RecoveryAction("nudge_cursor", SKIPPED, hotel_id, {"reason": "no sync state"})

        settings = dict(state.settings)
        if settings.get(NUDGE_SETTING):
            settings.pop(NUDGE_SETTING)
            rewind_bookings_cursor(conn, hotel_id, None, settings)
            reset_sync_cursors(conn, hotel_id)
            return RecoveryAction("reset_sync_state", APPLIED, hotel_id, {"after_nudge": True})

        # An unset cursor already means the default lookback; rewinding from now would shorten it
        cursor = state.last_bookings_modified_from
        if cursor is not None:
            cursor -= timedelta(hours=CURSOR_NUDGE_HOURS)
        settings[NUDGE_SETTING] = now.isoformat()
        rewind_bookings_cursor(conn, hotel_id, cursor, settings)
    return RecoveryAction(
        "nudge_cursor", APPLIED, hotel_id, {"cursor": cursor.isoformat() if cursor else None}
    )


def skip_held_records(engine: Engine, hotel_id: str) -> RecoveryAction:
    """
    Move a held-back booking cursor past the records that keep failing.

    The cursor moves to the newest modification time seen while it was held, or
    to the last held run when only unparseable records came back. Every booking
    that parsed was written on those runs, so only the failing records are
    skipped; their ids are returned for an operator to repair.
    """
    with engine.begin() as conn:
        state = get_sync_state(conn, hotel_id)
        hold = state.settings.get(CURSOR_HOLD_SETTING) if state else None
        if state is None or not hold:
            return RecoveryAction(
                "skip_held_records", SKIPPED, hotel_id, {"reason": "cursor not held"}
            )

        cursor = datetime.fromisoformat(hold.get("newest_seen") or hold["last_run_at"])
        current = state.last_bookings_modified_from
        if current is not None and current > cursor:
            cursor = current
        settings = dict(state.settings)
        settings.pop(CURSOR_HOLD_SETTING)
        rewind_bookings_cursor(conn, hotel_id, cursor, settings)
    return RecoveryAction(
        "skip_held_records",
        APPLIED,
        hotel_id,
        {"cursor": cursor.isoformat(), "skipped": list(hold.get("remote_ids", []))},
    )


def release_locks(engine: Engine, hotel_id: Optional[str], now: datetime) -> RecoveryAction:
    with engine.begin() as conn:
        count = release_stale_locks(conn, now, SYNC_LOCK_TTL_SECONDS, hotel_id=hotel_id)
    return RecoveryAction("release_locks", APPLIED, hotel_id, {"released": count})


def repair_data_integrity(
    engine: Engine, hotel_id: Optional[str], now: datetime
) -> RecoveryAction:
    """Remove orphaned ID mappings, abandoned locks and expired cached tokens."""
    with engine.begin() as conn:
        orphaned = find_orphaned_mappings(conn, hotel_id=hotel_id)
        deleted = delete_mappings(conn, orphaned)
        released = release_stale_locks(conn, now, SYNC_LOCK_TTL_SECONDS, hotel_id=hotel_id)
        expired = clear_expired_token_caches(conn, now, hotel_id=hotel_id)
    return RecoveryAction(
        "repair_data_integrity",
        APPLIED,
        hotel_id,
        {"orphaned_mappings": deleted, "locks_released": released, "tokens_cleared": expired},
    )


def force_bootstrap(engine: Engine, hotel_id: str) -> RecoveryAction:
    """Clear the bootstrap flag so bootstrap may run again for the hotel."""
    with engine.begin() as conn:
        reset_bootstrap(conn, hotel_id)
    return RecoveryAction("force_bootstrap", APPLIED, hotel_id)


# =============================================================================
# Entry points
# =============================================================================


def _fix_issue(engine: Engine, issue: HealthIssue, now: datetime) -> list[RecoveryAction]:
    if issue.type == ISSUE_EXPIRED_TOKEN and issue.hotel_id:
        refreshed = refresh_tokens(engine, issue.hotel_id)
        details = refreshed.details
        # Disabled connections have no tokens left to drop
        if refreshed.outcome == APPLIED or len(details["disabled"]) == len(details["errors"]):
            return [refreshed]
        return [refreshed, reset_tokens(engine, issue.hotel_id)]
    if issue.type == ISSUE_STALE_SYNC and issue.hotel_id:
        return [nudge_cursor(engine, issue.hotel_id, now)]
    if issue.type == ISSUE_STUCK_CURSOR and issue.hotel_id:
        return [skip_held_records(engine, issue.hotel_id)]
    if issue.type == ISSUE_STUCK_LOCK:
        return [release_locks(engine, issue.hotel_id, now)]
    return [
        RecoveryAction(
            "none", SKIPPED, issue.hotel_id, {"issue": issue.type, "reason": "needs an operator"}
        )
    ]


def auto_recovery(
    engine: Engine, hotel_id: Optional[str] = None, now: Optional[datetime] = None
) -> RecoveryReport:
    """
    Detect issues and apply the least disruptive fix for each.

    A healthy system yields an empty report and touches nothing, not even the
    audit log.

    Args:
        engine (Engine): SQLAlchemy engine.
        hotel_id (Optional[str]): Restrict to one hotel.
        now (Optional[datetime]): Evaluation time, used by tests.

    Returns:
        RecoveryReport: Issues found and actions taken.
    """
    now = now or utc_now()
    timer = OperationTimer()
    health = assess_health(engine, hotel_id=hotel_id, now=now)
    report = RecoveryReport(
        mode="auto",
        hotel_id=hotel_id,
        status_before=health.status,
        issues=[issue.to_dict() for issue in health.issues],
    )
    if not health.issues:
        report.status_after = health.status
        return report

    for issue in health.issues:
        for action in _fix_issue(engine, issue, now):
            report.record(action)

    report.status_after = assess_health(engine, hotel_id=hotel_id, now=now).status
    failed = [a for a in report.actions if a.outcome == FAILED]
    log_audit(
        engine,
        "auto_recovery",
        AUDIT_ERROR if failed else AUDIT_SUCCESS,
        hotel_id=hotel_id,
        duration_ms=timer.elapsed_ms(),
        records_processed=len(report.actions),
        error=f"{len(failed)} recovery actions failed" if failed else None,
        category="auth" if failed else None,
        metadata={
            "status_before": report.status_before,
            "status_after": report.status_after,
            "actions": [asdict(a) for a in report.actions],
        },
    )
    return report


def manual_recovery(
    engine: Engine,
    options: RecoveryOptions,
    initiated_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RecoveryReport:
    """
    Run operator-selected recovery primitives.

    Args:
        engine (Engine): SQLAlchemy engine.
        options (RecoveryOptions): Primitives to run and the hotel they apply to.
        initiated_by (Optional[str]): Operator identity, recorded in the audit log.
        now (Optional[datetime]): Evaluation time, used by tests.

    Returns:
        RecoveryReport: Actions taken.

    Raises:
        InvalidRequestError: Nothing selected, or force_bootstrap without a hotel.
    """
    selected = options.selected()
    if not selected:
        raise InvalidRequestError("No recovery option selected")
    if options.force_bootstrap and not options.hotel_id:
        raise InvalidRequestError("force_bootstrap requires a hotel_id")

    now = now or utc_now()
    timer = OperationTimer()
    hotel_id = options.hotel_id
    report = RecoveryReport(mode="manual", hotel_id=hotel_id)

    if options.reset_tokens:
        report.record(reset_tokens(engine, hotel_id))
    if options.clear_errors:
        report.record(clear_errors(engine, hotel_id, now))
    if options.reset_sync_state:
        report.record(reset_sync_state(engine, hotel_id, options.resync_from))
    if options.repair_data_integrity:
        report.record(repair_data_integrity(engine, hotel_id, now))
    if options.force_bootstrap and hotel_id:
        report.record(force_bootstrap(engine, hotel_id))

    log_audit(
        engine,
        "manual_recovery",
        AUDIT_SUCCESS,
        hotel_id=hotel_id,
        duration_ms=timer.elapsed_ms(),
        records_processed=len(report.actions),
        metadata={
            "options": selected,
            "initiated_by": initiated_by,
            "actions": [asdict(a) for a in report.actions],
        },
    )
    return report
