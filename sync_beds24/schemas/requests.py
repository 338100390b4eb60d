from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RequestModel(BaseModel):
    """Accepts both camelCase wire names and snake_case field names."""

    model_config = ConfigDict(populate_by_name=True)


class RateUpdates(RequestModel):
    """
    Values to push for every day of a date range. Omitted fields are left
    unchanged on Beds24.
    """

    rate: Optional[float] = Field(None, ge=0, description="Nightly price (price1)")
    availability: Optional[int] = Field(None, ge=0, description="Rooms available")
    stop_sell: Optional[bool] = Field(None, alias="stopSell")
    closed_arrival: Optional[bool] = Field(None, alias="closedArrival")
    closed_departure: Optional[bool] = Field(None, alias="closedDeparture")
    min_stay: Optional[int] = Field(None, ge=1, alias="minStay")
    max_stay: Optional[int] = Field(None, ge=1, alias="maxStay")

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class DateRange(RequestModel):
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class SchedulerRequest(RequestModel):
    action: Literal["manual_trigger", "run_scheduled"] = "manual_trigger"
    sync_type: Literal["all", "bookings", "calendar"] = Field("all", alias="syncType")
    hotel_id: Optional[str] = Field(None, alias="hotelId")


class BootstrapRequest(RequestModel):
    property_id: str = Field(..., min_length=1, alias="propertyId")
    hotel_id: str = Field(..., min_length=1, alias="hotelId")
    trace_id: Optional[str] = Field(None, alias="traceId")


class RatePushRequest(RequestModel):
    hotel_id: str = Field(..., min_length=1, alias="hotelId")
    room_type_id: str = Field(..., min_length=1, alias="roomTypeId")
    date_range: DateRange = Field(..., alias="dateRange")
    updates: RateUpdates
    trace_id: Optional[str] = Field(None, alias="traceId")


class RecoveryOptionsPayload(RequestModel):
    reset_tokens: bool = False
    clear_errors: bool = False
    reset_sync_state: bool = False
    resync_from: Optional[date] = None
    repair_data_integrity: bool = False
    force_bootstrap: bool = False


class RecoveryRequest(RequestModel):
    action: Literal["auto_recovery", "manual_recovery"]
    hotel_id: Optional[str] = Field(None, alias="hotelId")
    recovery_options: Optional[RecoveryOptionsPayload] = Field(None, alias="recoveryOptions")


class MonitoringRequest(RequestModel):
    action: Literal["health_overview", "performance_metrics", "error_analysis", "sync_status"]
    hotel_id: Optional[str] = Field(None, alias="hotelId")
    time_range: Literal["1h", "24h", "7d", "30d"] = Field("24h", alias="timeRange")


class ConnectionCreatePayload(RequestModel):
    """
    Register the Beds24 property of a hotel. Secret names refer to environment
    entries holding Beds24 refresh tokens, never the tokens themselves.
    """

    hotel_id: str = Field(..., min_length=1, alias="hotelId")
    property_id: str = Field(..., min_length=1, alias="propertyId")
    read_secret_name: str = Field(..., min_length=1, alias="readSecretName")
    write_secret_name: Optional[str] = Field(None, alias="writeSecretName")
    org_id: Optional[str] = Field(None, alias="orgId")
    scopes: list[str] = Field(default_factory=list)
    verify: bool = Field(True, description="Exchange the refresh token once before saving")
