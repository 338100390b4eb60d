import structlog
from pydantic import ValidationError
from sqlalchemy.engine import Engine

from sync_beds24.db.readers.connections import ConnectionRecord
from sync_beds24.errors import ClientError, PayloadError
from sync_beds24.metrics import poll_duration, poll_total
from sync_beds24.network.client import call
from sync_beds24.schemas.beds24 import PropertyPayload

logger = structlog.get_logger(__name__)


def poll_property(engine: Engine, connection: ConnectionRecord) -> PropertyPayload:
    """
    Fetch the connected property with all of its room types.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection (ConnectionRecord): Connection of the hotel.

    Returns:
        PropertyPayload: Validated property.

    Raises:
        ClientError: Beds24 does not know the property.
        PayloadError: The property payload is malformed.
    """
    labels = {"hotel_id": connection.hotel_id, "entity_type": "property"}
    with poll_duration.labels(**labels).time():
        try:
            response = call(
                engine,
                connection,
                "GET",
                "/properties",
                params={"id": connection.property_id, "includeAllRooms": "true"},
                operation="get_property",
            )
            items = response.items
            if not items:
                raise ClientError(
                    f"Beds24 property {connection.property_id} not found", status_code=404
                )
            try:
                prop = PropertyPayload.model_validate(items[0])
            except ValidationError as e:
                raise PayloadError(f"Invalid property payload: {e}") from e

            logger.info(
                "property_fetched",
                hotel_id=connection.hotel_id,
                property_id=prop.id,
                room_types=len(prop.room_types),
            )
            poll_total.labels(**labels, status="success").inc()
            return prop
        except Exception:
            poll_total.labels(**labels, status="failure").inc()
            raise
