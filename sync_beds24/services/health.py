"""
Health assessment over connections, sync state and the audit log.

The overall status is the worst severity among the detected issues: healthy
with none, warning when only warnings were found, critical otherwise. Each
issue names its type so operators see why a hotel is unhealthy.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.engine import Engine

from sync_beds24.config import (
    BOOTSTRAP_GRACE_HOURS,
    CREDIT_LOW_WATERMARK,
    ERROR_RATE_CRITICAL,
    ERROR_RATE_WARNING,
    ERROR_WINDOW_HOURS,
    MIN_ERRORS_FOR_CRITICAL,
    STALE_SYNC_HOURS,
    STUCK_CURSOR_RUNS,
    SYNC_LOCK_TTL_SECONDS,
)
from sync_beds24.db.readers.audit_log import AuditRecord, latest_credit_entry, list_audit_entries
from sync_beds24.db.readers.connections import list_connections
from sync_beds24.db.readers.sync_state import SyncStateRecord, list_sync_states
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_PARTIAL, AUDIT_SUCCESS
from sync_beds24.models.connections import CONNECTION_ERROR
from sync_beds24.models.sync_state import CURSOR_HOLD_SETTING
from sync_beds24.utils.datetime import utc_now

HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"

ISSUE_EXPIRED_TOKEN = "expired_token"
ISSUE_CONNECTION_ERROR = "connection_error"
ISSUE_ELEVATED_ERROR_RATE = "elevated_error_rate"
ISSUE_CRITICAL_ERROR_RATE = "critical_error_rate"
ISSUE_STALE_SYNC = "stale_sync"
ISSUE_BOOTSTRAP_STUCK = "bootstrap_stuck"
ISSUE_STUCK_LOCK = "stuck_lock"
ISSUE_STUCK_CURSOR = "stuck_cursor"
ISSUE_LOW_CREDIT = "low_credit"

TERMINAL_STATUSES = (AUDIT_SUCCESS, AUDIT_ERROR, AUDIT_PARTIAL)

# Issue types auto_recovery knows how to act on
AUTO_FIXABLE = {ISSUE_EXPIRED_TOKEN, ISSUE_STALE_SYNC, ISSUE_STUCK_LOCK, ISSUE_STUCK_CURSOR}


@dataclass
class HealthIssue:
    type: str
    severity: str
    message: str
    hotel_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def auto_fixable(self) -> bool:
        return self.type in AUTO_FIXABLE

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["auto_fixable"] = self.auto_fixable
        return data


@dataclass
class HealthReport:
    status: str
    checked_at: datetime
    issues: list[HealthIssue] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    def issues_of(self, issue_type: str) -> list[HealthIssue]:
        return [issue for issue in self.issues if issue.type == issue_type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "checked_at": self.checked_at.isoformat(),
            "issues": [issue.to_dict() for issue in self.issues],
            "metrics": self.metrics,
        }


def overall_status(issues: list[HealthIssue]) -> str:
    if any(issue.severity == CRITICAL for issue in issues):
        return CRITICAL
    if issues:
        return WARNING
    return HEALTHY


def counted_entries(
    entries: list[AuditRecord], states: dict[str, SyncStateRecord]
) -> list[AuditRecord]:
    """
    Terminal audit entries that count toward the error rate.

    Precondition refusals are excluded, as is anything logged before the
    hotel's errors-cleared watermark.
    """
    counted = []
    for entry in entries:
        if entry.status not in TERMINAL_STATUSES:
            continue
        if entry.error_category == "precondition":
            continue
        state = states.get(entry.hotel_id) if entry.hotel_id else None
        if state and state.errors_cleared_at and entry.created_at <= state.errors_cleared_at:
            continue
        counted.append(entry)
    return counted


def _error_rate_issues(
    entries: list[AuditRecord], states: dict[str, SyncStateRecord]
) -> tuple[list[HealthIssue], dict[str, Any]]:
    by_hotel: dict[Optional[str], list[AuditRecord]] = defaultdict(list)
    for entry in counted_entries(entries, states):
        by_hotel[entry.hotel_id].append(entry)

    issues = []
    total = errors = 0
    for hotel_id, hotel_entries in by_hotel.items():
        hotel_errors = sum(1 for e in hotel_entries if e.status == AUDIT_ERROR)
        total += len(hotel_entries)
        errors += hotel_errors
        rate = hotel_errors / len(hotel_entries)
        details = {"errors": hotel_errors, "operations": len(hotel_entries), "rate": round(rate, 4)}
        if rate >= ERROR_RATE_CRITICAL and hotel_errors >= MIN_ERRORS_FOR_CRITICAL:
            issues.append(
                HealthIssue(
                    type=ISSUE_CRITICAL_ERROR_RATE,
                    severity=CRITICAL,
                    message=f"{hotel_errors} of {len(hotel_entries)} operations failed",
                    hotel_id=hotel_id,
                    details=details,
                )
            )
        elif hotel_errors and rate >= ERROR_RATE_WARNING:
            issues.append(
                HealthIssue(
                    type=ISSUE_ELEVATED_ERROR_RATE,
                    severity=WARNING,
                    message=f"{hotel_errors} of {len(hotel_entries)} operations failed",
                    hotel_id=hotel_id,
                    details=details,
                )
            )

    metrics = {
        "operations": total,
        "errors": errors,
        "error_rate": round(errors / total, 4) if total else 0.0,
    }
    return issues, metrics


def _state_issues(state: SyncStateRecord, now: datetime) -> list[HealthIssue]:
    issues = []
    hotel_id = state.hotel_id

    if not state.bootstrap_completed:
        since = state.bootstrap_started_at or state.created_at
        if since and now - since > timedelta(hours=BOOTSTRAP_GRACE_HOURS):
            issues.append(
                HealthIssue(
                    type=ISSUE_BOOTSTRAP_STUCK,
                    severity=CRITICAL,
                    message=f"Bootstrap not completed since {since.isoformat()}",
                    hotel_id=hotel_id,
                    details={"since": since.isoformat()},
                )
            )
    elif state.sync_enabled:
        last = state.last_bookings_synced_at or state.bootstrap_completed_at
        if last is None or now - last > timedelta(hours=STALE_SYNC_HOURS):
            issues.append(
                HealthIssue(
                    type=ISSUE_STALE_SYNC,
                    severity=WARNING,
                    message="Bookings have not been synced recently",
                    hotel_id=hotel_id,
                    details={"last_synced_at": last.isoformat() if last else None},
                )
            )

        hold = state.settings.get(CURSOR_HOLD_SETTING) or {}
        if int(hold.get("runs", 0)) >= STUCK_CURSOR_RUNS:
            issues.append(
                HealthIssue(
                    type=ISSUE_STUCK_CURSOR,
                    severity=WARNING,
                    message=f"Bookings cursor held back for {hold['runs']} consecutive runs",
                    hotel_id=hotel_id,
                    details=dict(hold),
                )
            )

    if state.sync_locked_at and now - state.sync_locked_at > timedelta(
        seconds=SYNC_LOCK_TTL_SECONDS
    ):
        issues.append(
            HealthIssue(
                type=ISSUE_STUCK_LOCK,
                severity=WARNING,
                message="Sync lock held past its time-to-live",
                hotel_id=hotel_id,
                details={
                    "locked_at": state.sync_locked_at.isoformat(),
                    "owner": state.sync_lock_owner,
                },
            )
        )
    return issues


def assess_health(
    engine: Engine, hotel_id: Optional[str] = None, now: Optional[datetime] = None
) -> HealthReport:
    """
    Compute the health of one hotel or of the whole system.

    Args:
        engine (Engine): SQLAlchemy engine.
        hotel_id (Optional[str]): Restrict to one hotel.
        now (Optional[datetime]): Evaluation time, used by tests.

    Returns:
        HealthReport: Status, typed issues and aggregate numbers.
    """
    now = now or utc_now()
    since = now - timedelta(hours=ERROR_WINDOW_HOURS)

    with engine.connect() as conn:
        connections = list_connections(conn, hotel_id=hotel_id)
        states = {s.hotel_id: s for s in list_sync_states(conn, hotel_id=hotel_id)}
        entries = list_audit_entries(conn, since=since, hotel_id=hotel_id)
        credit = {h: latest_credit_entry(conn, h, since) for h in states}

    issues: list[HealthIssue] = []
    connected_hotels = set()
    for connection in connections:
        connected_hotels.add(connection.hotel_id)
        if connection.status == CONNECTION_ERROR:
            issues.append(
                HealthIssue(
                    type=ISSUE_EXPIRED_TOKEN,
                    severity=CRITICAL,
                    message=connection.last_error or "Beds24 credential rejected",
                    hotel_id=connection.hotel_id,
                    details={
                        "connection_id": connection.id,
                        "property_id": connection.property_id,
                    },
                )
            )

    for state in states.values():
        if state.sync_enabled and state.hotel_id not in connected_hotels:
            issues.append(
                HealthIssue(
                    type=ISSUE_CONNECTION_ERROR,
                    severity=CRITICAL,
                    message="Sync is enabled but the hotel has no active connection",
                    hotel_id=state.hotel_id,
                    details={"property_id": state.property_id},
                )
            )
        issues.extend(_state_issues(state, now))

        entry = credit.get(state.hotel_id)
        if entry is not None and entry.limit_remaining is not None:
            resets_at = entry.created_at + timedelta(seconds=entry.limit_resets_in or 0)
            if entry.limit_remaining < CREDIT_LOW_WATERMARK and resets_at > now:
                issues.append(
                    HealthIssue(
                        type=ISSUE_LOW_CREDIT,
                        severity=WARNING,
                        message=f"Only {entry.limit_remaining:g} API credits left",
                        hotel_id=state.hotel_id,
                        details={
                            "remaining": entry.limit_remaining,
                            "resets_at": resets_at.isoformat(),
                        },
                    )
                )

    rate_issues, rate_metrics = _error_rate_issues(entries, states)
    issues.extend(rate_issues)

    metrics = {
        "hotels": len(states),
        "bootstrapped": sum(1 for s in states.values() if s.bootstrap_completed),
        "sync_enabled": sum(1 for s in states.values() if s.sync_enabled),
        "connections": len(connections),
        "window_hours": ERROR_WINDOW_HOURS,
        **rate_metrics,
    }
    return HealthReport(
        status=overall_status(issues), checked_at=now, issues=issues, metrics=metrics
    )
