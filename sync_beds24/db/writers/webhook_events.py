from typing import Any, Optional

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from sync_beds24.models.base import new_uuid
from sync_beds24.models.webhook_events import WebhookEvent
from sync_beds24.utils.datetime import utc_now


def insert_webhook_event(
    conn: Connection,
    webhook_type: str,
    payload: dict[str, Any],
    hotel_id: Optional[str] = None,
    property_id: Optional[str] = None,
    booking_id: Optional[str] = None,
    event_type: Optional[str] = None,
) -> str:
    """
    Store a received webhook payload, unprocessed.

    Returns:
        str: Webhook event id.
    """
    event_id = new_uuid()
    conn.execute(
        insert(WebhookEvent).values(
            id=event_id,
            hotel_id=hotel_id,
            property_id=property_id,
            booking_id=booking_id,
            webhook_type=webhook_type,
            event_type=event_type,
            payload=payload,
            processed=False,
            created_at=utc_now(),
        )
    )
    return event_id


def mark_webhook_processed(
    conn: Connection, event_id: str, error: Optional[str] = None
) -> None:
    """Record the outcome of processing; a failed event stays unprocessed."""
    conn.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == event_id)
        .values(
            processed=error is None,
            processed_at=utc_now() if error is None else None,
            processing_error=error,
        )
    )
