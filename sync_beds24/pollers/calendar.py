from datetime import date
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.engine import Engine

from sync_beds24.db.readers.connections import ConnectionRecord
from sync_beds24.errors import PayloadError
from sync_beds24.metrics import poll_duration, poll_total
from sync_beds24.network.client import fetch_all_pages
from sync_beds24.schemas.beds24 import RoomCalendarPayload

logger = structlog.get_logger(__name__)


def poll_calendar(
    engine: Engine,
    connection: ConnectionRecord,
    room_ids: list[str],
    start: date,
    end: date,
) -> list[RoomCalendarPayload]:
    """
    Fetch availability, prices and restrictions for rooms over a date window.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection (ConnectionRecord): Connection of the hotel.
        room_ids (list[str]): Beds24 room ids to fetch.
        start (date): First day of the window.
        end (date): Last day of the window (inclusive).

    Returns:
        list[RoomCalendarPayload]: One entry per room with its calendar ranges.
    """
    labels = {"hotel_id": connection.hotel_id, "entity_type": "calendar"}
    if not room_ids:
        return []

    params: dict[str, Any] = {
        "roomId": room_ids,
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "includeNumAvail": "true",
        "includePrices": "true",
        "includeMinStay": "true",
        "includeMaxStay": "true",
    }

    with poll_duration.labels(**labels).time():
        try:
            raw, _ = fetch_all_pages(
                engine,
                connection,
                "/inventory/rooms/calendar",
                params=params,
                operation="get_calendar",
            )
            try:
                rooms = [RoomCalendarPayload.model_validate(item) for item in raw]
            except ValidationError as e:
                raise PayloadError(f"Invalid calendar payload: {e}") from e

            logger.info(
                "calendar_fetched",
                hotel_id=connection.hotel_id,
                rooms=len(rooms),
                start=start.isoformat(),
                end=end.isoformat(),
            )
            poll_total.labels(**labels, status="success").inc()
            return rooms
        except Exception:
            poll_total.labels(**labels, status="failure").inc()
            raise
