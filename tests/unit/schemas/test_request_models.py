"""
Unit tests for API request models.
"""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from sync_beds24.schemas.requests import (
    MonitoringRequest,
    RatePushRequest,
    RateUpdates,
    RecoveryRequest,
    SchedulerRequest,
)


@pytest.mark.unit
def test_rate_push_request_accepts_camel_case() -> None:
    """Test that the documented wire format parses."""
    request = RatePushRequest.model_validate(
        {
            "hotelId": "hotel-1",
            "roomTypeId": "rt-1",
            "dateRange": {"startDate": "2025-06-01", "endDate": "2025-06-10"},
            "updates": {"rate": 120, "stopSell": True},
        }
    )

    assert request.date_range.start_date == date(2025, 6, 1)
    assert request.updates.stop_sell is True
    assert request.updates.model_dump(exclude_none=True) == {"rate": 120.0, "stop_sell": True}


@pytest.mark.unit
def test_date_range_must_be_ordered() -> None:
    """Test that an end date before the start date is rejected."""
    with pytest.raises(ValidationError):
        RatePushRequest.model_validate(
            {
                "hotelId": "hotel-1",
                "roomTypeId": "rt-1",
                "dateRange": {"startDate": "2025-06-10", "endDate": "2025-06-01"},
                "updates": {"rate": 120},
            }
        )


@pytest.mark.unit
def test_rate_updates_validation() -> None:
    """Test bounds on pushed values and the empty check."""
    assert RateUpdates().is_empty()
    assert not RateUpdates(availability=0).is_empty()
    with pytest.raises(ValidationError):
        RateUpdates(rate=-1)
    with pytest.raises(ValidationError):
        RateUpdates(min_stay=0)


@pytest.mark.unit
def test_scheduler_request_defaults() -> None:
    """Test that a bare scheduler request is a manual trigger for everything."""
    request = SchedulerRequest.model_validate({})

    assert request.action == "manual_trigger"
    assert request.sync_type == "all"
    assert request.hotel_id is None


@pytest.mark.unit
def test_recovery_request_accepts_snake_case_options() -> None:
    """Test that recovery options parse from either naming style."""
    request = RecoveryRequest.model_validate(
        {
            "action": "manual_recovery",
            "hotel_id": "hotel-1",
            "recovery_options": {"reset_tokens": True, "resync_from": "2025-01-01"},
        }
    )

    assert request.hotel_id == "hotel-1"
    assert request.recovery_options is not None
    assert request.recovery_options.reset_tokens is True
    assert request.recovery_options.resync_from == date(2025, 1, 1)


@pytest.mark.unit
def test_monitoring_request_rejects_unknown_range() -> None:
    """Test that only the supported monitoring windows are accepted."""
    assert MonitoringRequest.model_validate({"action": "sync_status"}).time_range == "24h"
    with pytest.raises(ValidationError):
        MonitoringRequest.model_validate({"action": "error_analysis", "timeRange": "2y"})
