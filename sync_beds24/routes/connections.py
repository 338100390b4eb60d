from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.engine import Engine

from sync_beds24.dependencies import get_db_engine
from sync_beds24.errors import Beds24Error
from sync_beds24.routes._helpers import require_admin
from sync_beds24.schemas.requests import ConnectionCreatePayload
from sync_beds24.services.connections import remove_connection, setup_connection

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/connections", status_code=status.HTTP_201_CREATED)
def create_connection(
    payload: ConnectionCreatePayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Register or re-activate the Beds24 connection of a hotel. Admin only.

    Args:
        payload: Hotel, property and the secret names holding the refresh tokens
        engine: Database engine

    Returns:
        dict: Connection id and status (tokens are never returned)
    """
    try:
        connection = setup_connection(
            engine,
            hotel_id=payload.hotel_id,
            property_id=payload.property_id,
            read_secret_name=payload.read_secret_name,
            write_secret_name=payload.write_secret_name,
            scopes=payload.scopes,
            org_id=payload.org_id,
            verify=payload.verify,
        )
    except (Beds24Error, HTTPException):
        raise
    except Exception as e:
        logger.exception("connection_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "id": connection.id,
        "hotelId": connection.hotel_id,
        "propertyId": connection.property_id,
        "status": connection.status,
        "scopes": connection.scopes,
    }


@router.delete("/connections/{hotel_id}/{property_id}")
def delete_connection(
    hotel_id: str,
    property_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, str]:
    """
    Disable a connection. The row is kept; sync stops using it.

    Returns:
        dict: Confirmation message
    """
    try:
        remove_connection(engine, hotel_id, property_id)
    except (Beds24Error, HTTPException):
        raise
    except Exception as e:
        logger.exception("connection_disable_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": f"Connection {hotel_id}/{property_id} disabled"}
