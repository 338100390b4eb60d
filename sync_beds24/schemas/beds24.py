"""
Typed views of Beds24 v2 payloads.

Raw JSON from the API is validated here, at the client boundary, and only these
models reach the orchestrators. Unknown fields are ignored so additive changes
on the Beds24 side do not break parsing.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Beds24Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RoomTypePayload(Beds24Model):
    id: int
    name: Optional[str] = None
    qty: Optional[int] = None
    max_people: Optional[int] = Field(None, alias="maxPeople")


class PropertyPayload(Beds24Model):
    id: int
    name: Optional[str] = None
    currency: Optional[str] = None
    room_types: list[RoomTypePayload] = Field(default_factory=list, alias="roomTypes")


class GuestPayload(Beds24Model):
    id: Optional[int] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None


class BookingPayload(Beds24Model):
    """
    A Beds24 booking.

    ``modified_time`` drives the delta sync cursor. ``cancel_time`` is the only
    cancellation signal the sync core acts on.
    """

    id: int
    property_id: Optional[int] = Field(None, alias="propertyId")
    room_id: Optional[int] = Field(None, alias="roomId")
    status: Optional[str] = None
    arrival: date
    departure: date
    num_adult: Optional[int] = Field(None, alias="numAdult")
    num_child: Optional[int] = Field(None, alias="numChild")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    price: Optional[float] = None
    referer: Optional[str] = None
    modified_time: Optional[datetime] = Field(None, alias="modifiedTime")
    cancel_time: Optional[datetime] = Field(None, alias="cancelTime")
    guests: list[GuestPayload] = Field(default_factory=list)

    @field_validator("modified_time", "cancel_time")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("modified_time", "cancel_time", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if value in ("", "0000-00-00 00:00:00"):
            return None
        return value


class CalendarRangePayload(Beds24Model):
    """One calendar entry; Beds24 collapses identical consecutive days into a from/to range."""

    from_date: date = Field(alias="from")
    to_date: date = Field(alias="to")
    num_avail: Optional[int] = Field(None, alias="numAvail")
    price1: Optional[float] = None
    min_stay: Optional[int] = Field(None, alias="minStay")
    max_stay: Optional[int] = Field(None, alias="maxStay")
    closed_arrival: Optional[bool] = Field(None, alias="closedArrival")
    closed_departure: Optional[bool] = Field(None, alias="closedDeparture")
    stop_sell: Optional[bool] = Field(None, alias="stopSell")


class RoomCalendarPayload(Beds24Model):
    room_id: int = Field(alias="roomId")
    calendar: list[CalendarRangePayload] = Field(default_factory=list)


class CalendarPushLine(Beds24Model):
    """A date-range update line for POST /inventory/rooms/calendar."""

    from_date: date = Field(serialization_alias="from")
    to_date: date = Field(serialization_alias="to")
    price1: Optional[float] = None
    num_avail: Optional[int] = Field(None, serialization_alias="numAvail")
    stop_sell: Optional[bool] = Field(None, serialization_alias="stopSell")
    closed_arrival: Optional[bool] = Field(None, serialization_alias="closedArrival")
    closed_departure: Optional[bool] = Field(None, serialization_alias="closedDeparture")
    min_stay: Optional[int] = Field(None, serialization_alias="minStay")
    max_stay: Optional[int] = Field(None, serialization_alias="maxStay")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PushResultPayload(Beds24Model):
    success: bool = False
    errors: list[Any] = Field(default_factory=list)
    warnings: list[Any] = Field(default_factory=list)


class TokenPayload(Beds24Model):
    token: str
    expires_in: int = Field(alias="expiresIn")
