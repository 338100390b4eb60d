from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.engine import Engine

from sync_beds24.db.readers.connections import ConnectionRecord
from sync_beds24.metrics import poll_duration, poll_total
from sync_beds24.network.client import CreditInfo, fetch_all_pages
from sync_beds24.schemas.beds24 import BookingPayload
from sync_beds24.utils.datetime import to_remote_timestamp

logger = structlog.get_logger(__name__)


@dataclass
class BookingBatch:
    """Validated bookings plus the raw records that failed validation."""

    bookings: list[BookingPayload] = field(default_factory=list)
    invalid: list[dict[str, Any]] = field(default_factory=list)
    credit: CreditInfo = field(default_factory=CreditInfo)


def parse_bookings(raw: list[Any]) -> tuple[list[BookingPayload], list[dict[str, Any]]]:
    """
    Validate raw booking records one by one.

    A malformed record is reported instead of failing the whole batch.

    Args:
        raw (list): Booking dicts as returned by Beds24.

    Returns:
        tuple: (valid bookings, [{"remote_id", "error"}] for invalid ones)
    """
    valid: list[BookingPayload] = []
    invalid: list[dict[str, Any]] = []
    for item in raw:
        try:
            valid.append(BookingPayload.model_validate(item))
        except ValidationError as e:
            remote_id = item.get("id") if isinstance(item, dict) else None
            invalid.append({"remote_id": str(remote_id), "error": str(e)})
    return valid, invalid


def poll_bookings(
    engine: Engine,
    connection: ConnectionRecord,
    modified_from: Optional[datetime] = None,
    arrival_from: Optional[date] = None,
) -> BookingBatch:
    """
    Fetch bookings of the connected property with their guests.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection (ConnectionRecord): Connection of the hotel.
        modified_from (Optional[datetime]): Only bookings modified at or after this time.
        arrival_from (Optional[date]): Only bookings arriving on or after this date.

    Returns:
        BookingBatch: Validated bookings, invalid records and the last credit info.
    """
    labels = {"hotel_id": connection.hotel_id, "entity_type": "bookings"}
    params: dict[str, Any] = {"propertyId": connection.property_id, "includeGuests": "true"}
    if modified_from is not None:
        params["modifiedFrom"] = to_remote_timestamp(modified_from)
    if arrival_from is not None:
        params["arrivalFrom"] = arrival_from.isoformat()

    with poll_duration.labels(**labels).time():
        try:
            raw, credit = fetch_all_pages(
                engine, connection, "/bookings", params=params, operation="get_bookings"
            )
            bookings, invalid = parse_bookings(raw)

            logger.info(
                "bookings_fetched",
                hotel_id=connection.hotel_id,
                valid=len(bookings),
                invalid=len(invalid),
            )
            poll_total.labels(**labels, status="success").inc()
            return BookingBatch(bookings=bookings, invalid=invalid, credit=credit)
        except Exception:
            poll_total.labels(**labels, status="failure").inc()
            raise
