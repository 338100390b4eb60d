"""
Integration tests for health assessment.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy.engine import Engine

from sync_beds24.db.writers.connections import mark_connection_error
from sync_beds24.db.writers.sync_state import acquire_sync_lock, update_sync_settings
from sync_beds24.errors import NotBootstrapped, RetryableError
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_STARTED, AUDIT_SUCCESS
from sync_beds24.services.audit import log_audit
from sync_beds24.services.health import (
    CRITICAL,
    HEALTHY,
    ISSUE_BOOTSTRAP_STUCK,
    ISSUE_CONNECTION_ERROR,
    ISSUE_CRITICAL_ERROR_RATE,
    ISSUE_ELEVATED_ERROR_RATE,
    ISSUE_EXPIRED_TOKEN,
    ISSUE_LOW_CREDIT,
    ISSUE_STALE_SYNC,
    ISSUE_STUCK_CURSOR,
    ISSUE_STUCK_LOCK,
    WARNING,
    assess_health,
)
from sync_beds24.utils.datetime import utc_now


def _log_runs(engine: Engine, errors: int, successes: int, error: Any = None) -> None:
    for _ in range(errors):
        log_audit(
            engine,
            "delta_sync",
            AUDIT_ERROR,
            hotel_id="hotel-1",
            error=error or RetryableError("Beds24 returned 503", status_code=503),
        )
    for _ in range(successes):
        log_audit(engine, "delta_sync", AUDIT_SUCCESS, hotel_id="hotel-1")


@pytest.mark.integration
def test_freshly_synced_hotel_is_healthy(db_engine: Engine, seed: Any) -> None:
    seed.hotel()

    report = assess_health(db_engine, now=utc_now())

    assert report.status == HEALTHY
    assert report.issues == []
    assert report.metrics["hotels"] == 1
    assert report.metrics["bootstrapped"] == 1


@pytest.mark.integration
def test_rejected_credential_is_critical(db_engine: Engine, seed: Any) -> None:
    """Test that a connection in error state reports an auto-fixable expired token."""
    hotel = seed.hotel()
    with db_engine.begin() as conn:
        mark_connection_error(conn, hotel.connection.id, "auth: refresh token rejected")

    report = assess_health(db_engine, now=utc_now())

    assert report.status == CRITICAL
    [issue] = report.issues_of(ISSUE_EXPIRED_TOKEN)
    assert issue.hotel_id == "hotel-1"
    assert issue.auto_fixable is True
    assert "rejected" in issue.message


@pytest.mark.integration
def test_enabled_hotel_without_connection(db_engine: Engine, seed: Any) -> None:
    seed.state()

    report = assess_health(db_engine, now=utc_now())

    assert [i.type for i in report.issues] == [ISSUE_CONNECTION_ERROR]
    assert report.status == CRITICAL


@pytest.mark.integration
def test_stale_sync_is_a_warning(db_engine: Engine, seed: Any) -> None:
    """Test that a hotel not synced for longer than the stale threshold is flagged."""
    seed.hotel()

    report = assess_health(db_engine, now=utc_now() + timedelta(hours=4))

    assert report.status == WARNING
    assert [i.type for i in report.issues] == [ISSUE_STALE_SYNC]


@pytest.mark.integration
def test_cursor_held_for_several_runs_is_stuck(db_engine: Engine, seed: Any) -> None:
    """Test that a held-back cursor is flagged once it reaches the run limit."""
    seed.hotel()
    hold = {"runs": 2, "cursor": "2026-10-18T00:00:00+00:00", "remote_ids": ["9100"]}
    with db_engine.begin() as conn:
        update_sync_settings(conn, "hotel-1", {"cursor_hold": hold})

    assert assess_health(db_engine, now=utc_now()).issues == []

    with db_engine.begin() as conn:
        update_sync_settings(conn, "hotel-1", {"cursor_hold": {**hold, "runs": 3}})

    report = assess_health(db_engine, now=utc_now())

    assert report.status == WARNING
    [issue] = report.issues_of(ISSUE_STUCK_CURSOR)
    assert issue.auto_fixable is True
    assert issue.details["remote_ids"] == ["9100"]


@pytest.mark.integration
def test_unfinished_bootstrap_past_grace(db_engine: Engine, seed: Any) -> None:
    seed.connection()
    seed.state(bootstrapped=False)

    assert assess_health(db_engine, now=utc_now()).issues == []

    report = assess_health(db_engine, now=utc_now() + timedelta(hours=25))
    assert [i.type for i in report.issues] == [ISSUE_BOOTSTRAP_STUCK]
    assert report.status == CRITICAL


@pytest.mark.integration
def test_stuck_lock_is_reported(db_engine: Engine, seed: Any) -> None:
    seed.hotel()
    with db_engine.begin() as conn:
        acquire_sync_lock(conn, "hotel-1", "gone", utc_now() - timedelta(hours=2), 900)

    report = assess_health(db_engine, now=utc_now())

    [issue] = report.issues_of(ISSUE_STUCK_LOCK)
    assert issue.details["owner"] == "gone"
    assert issue.auto_fixable is True


@pytest.mark.integration
def test_high_error_rate_is_critical(db_engine: Engine, seed: Any) -> None:
    """Test that three or more failures at or above the critical rate are critical."""
    seed.hotel()
    _log_runs(db_engine, errors=3, successes=1)

    report = assess_health(db_engine, now=utc_now())

    [issue] = report.issues_of(ISSUE_CRITICAL_ERROR_RATE)
    assert issue.details == {"errors": 3, "operations": 4, "rate": 0.75}
    assert report.status == CRITICAL
    assert report.metrics["error_rate"] == 0.75


@pytest.mark.integration
def test_few_errors_are_only_a_warning(db_engine: Engine, seed: Any) -> None:
    """Test that a single failure is elevated but never critical."""
    seed.hotel()
    _log_runs(db_engine, errors=1, successes=1)

    report = assess_health(db_engine, now=utc_now())

    assert [i.type for i in report.issues] == [ISSUE_ELEVATED_ERROR_RATE]
    assert report.status == WARNING


@pytest.mark.integration
def test_precondition_refusals_do_not_count(db_engine: Engine, seed: Any) -> None:
    """Test that refusals and started rows are left out of the error rate."""
    seed.hotel()
    _log_runs(db_engine, errors=5, successes=0, error=NotBootstrapped("hotel-1"))
    log_audit(db_engine, "bootstrap", AUDIT_STARTED, hotel_id="hotel-1")

    report = assess_health(db_engine, now=utc_now())

    assert report.status == HEALTHY
    assert report.metrics["operations"] == 0
    assert report.metrics["error_rate"] == 0.0


@pytest.mark.integration
def test_low_credit_until_reset(db_engine: Engine, seed: Any) -> None:
    """Test that a low remaining budget is reported only until it resets."""
    seed.hotel()
    log_audit(
        db_engine,
        "api:get_bookings",
        AUDIT_SUCCESS,
        hotel_id="hotel-1",
        limit_remaining=12,
        limit_resets_in=240,
    )

    report = assess_health(db_engine, now=utc_now())
    [issue] = report.issues_of(ISSUE_LOW_CREDIT)
    assert issue.details["remaining"] == 12

    later = assess_health(db_engine, now=utc_now() + timedelta(minutes=5))
    assert later.issues_of(ISSUE_LOW_CREDIT) == []
