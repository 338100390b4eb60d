"""
Beds24 booking webhook ingestion.

Each delivery is stored first, then booking deliveries are applied through
the same ID map path the delta sync uses. Processing never moves the
bookings cursor: the next delta sync sees the booking again and re-applies
it idempotently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_beds24.db.readers.connections import find_connection_by_property
from sync_beds24.db.readers.sync_state import get_sync_state
from sync_beds24.db.writers.webhook_events import insert_webhook_event, mark_webhook_processed
from sync_beds24.errors import SyncInProgress
from sync_beds24.metrics import records_synced, webhooks_received
from sync_beds24.models.audit_log import AUDIT_ERROR, AUDIT_SUCCESS
from sync_beds24.models.webhook_events import WEBHOOK_BOOKING, WEBHOOK_UNKNOWN
from sync_beds24.schemas.beds24 import BookingPayload
from sync_beds24.services.audit import log_audit
from sync_beds24.services.booking_import import apply_booking

logger = structlog.get_logger(__name__)

OPERATION = "webhook"


@dataclass
class WebhookResult:
    webhook_id: str
    webhook_type: str
    hotel_id: Optional[str] = None
    processed: bool = False
    created: Optional[bool] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "webhookId": self.webhook_id,
            "type": self.webhook_type,
            "processed": self.processed,
            "error": self.error,
        }


def _booking_data(payload: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Booking body of a delivery, either nested under ``booking`` or the payload itself."""
    nested = payload.get("booking")
    if isinstance(nested, dict):
        return nested
    if "bookingId" in payload or ("id" in payload and "arrival" in payload):
        return payload
    return None


def _as_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def classify_webhook(payload: dict[str, Any]) -> str:
    return WEBHOOK_BOOKING if _booking_data(payload) is not None else WEBHOOK_UNKNOWN


def _process_booking(
    engine: Engine, result: WebhookResult, booking_data: dict[str, Any]
) -> Optional[str]:
    """Apply one booking delivery; returns the error message when it was not applied."""
    if result.hotel_id is None:
        return "No active connection for property"

    with engine.connect() as conn:
        state = get_sync_state(conn, result.hotel_id)
    if state is None or not state.bootstrap_completed:
        return "Hotel has not been bootstrapped"
    if not state.sync_enabled:
        return "Sync is disabled for hotel"

    data = dict(booking_data)
    if "id" not in data and "bookingId" in data:
        data["id"] = data["bookingId"]
    try:
        booking = BookingPayload.model_validate(data)
    except ValidationError as e:
        return f"Invalid booking payload: {e.error_count()} validation errors"

    try:
        with engine.begin() as conn:
            applied = apply_booking(conn, result.hotel_id, booking)
            mark_webhook_processed(conn, result.webhook_id)
    except (SQLAlchemyError, SyncInProgress) as e:
        logger.exception(
            "webhook_booking_apply_failed",
            webhook_id=result.webhook_id,
            hotel_id=result.hotel_id,
            booking_id=booking.id,
        )
        return str(e)

    result.processed = True
    result.created = applied.created
    records_synced.labels(hotel_id=result.hotel_id, entity_type="bookings").inc()
    return None


def receive_webhook(engine: Engine, payload: dict[str, Any]) -> WebhookResult:
    """
    Store a Beds24 webhook delivery and apply it when it carries a booking.

    Deliveries that cannot be processed (unknown property, hotel not synced,
    invalid booking) are kept with their ``processing_error`` and still
    acknowledged, so Beds24 does not keep redelivering them.

    Args:
        engine: SQLAlchemy engine
        payload: Parsed JSON body

    Returns:
        WebhookResult: Stored event id and processing outcome
    """
    webhook_type = classify_webhook(payload)
    booking_data = _booking_data(payload) or {}
    property_id = _as_str(payload.get("propertyId") or booking_data.get("propertyId"))
    booking_id = _as_str(booking_data.get("id") or booking_data.get("bookingId"))

    with engine.begin() as conn:
        connection = find_connection_by_property(conn, property_id) if property_id else None
        hotel_id = connection.hotel_id if connection else None
        webhook_id = insert_webhook_event(
            conn,
            webhook_type,
            payload,
            hotel_id=hotel_id,
            property_id=property_id,
            booking_id=booking_id,
            event_type=_as_str(payload.get("action") or payload.get("event")),
        )

    result = WebhookResult(webhook_id=webhook_id, webhook_type=webhook_type, hotel_id=hotel_id)
    if webhook_type != WEBHOOK_BOOKING:
        logger.info("webhook_ignored", webhook_id=webhook_id, webhook_type=webhook_type)
        webhooks_received.labels(webhook_type=webhook_type, outcome="ignored").inc()
        return result

    error = _process_booking(engine, result, booking_data)
    if error is not None:
        result.error = error
        with engine.begin() as conn:
            mark_webhook_processed(conn, webhook_id, error=error)
        logger.warning(
            "webhook_not_processed",
            webhook_id=webhook_id,
            hotel_id=hotel_id,
            property_id=property_id,
            booking_id=booking_id,
            error=error,
        )
    else:
        logger.info(
            "webhook_booking_applied",
            webhook_id=webhook_id,
            hotel_id=hotel_id,
            booking_id=booking_id,
            created=result.created,
        )

    webhooks_received.labels(
        webhook_type=webhook_type, outcome="processed" if result.processed else "failed"
    ).inc()
    log_audit(
        engine,
        OPERATION,
        AUDIT_SUCCESS if result.processed else AUDIT_ERROR,
        hotel_id=hotel_id,
        entity_type="bookings",
        records_processed=1 if result.processed else 0,
        error=error,
        category="webhook" if error else None,
        metadata={"webhook_id": webhook_id, "booking_id": booking_id},
    )
    return result
