from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_beds24.models.webhook_events import WebhookEvent


def get_webhook_event(conn: Connection, event_id: str) -> Optional[dict[str, Any]]:
    row = conn.execute(
        select(WebhookEvent.__table__).where(WebhookEvent.id == event_id)
    ).fetchone()
    return dict(row._mapping) if row else None
