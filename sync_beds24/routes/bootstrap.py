from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from sync_beds24.dependencies import get_db_engine, get_request_id
from sync_beds24.errors import Beds24Error
from sync_beds24.routes._helpers import require_admin
from sync_beds24.schemas.requests import BootstrapRequest
from sync_beds24.services.bootstrap import bootstrap_property

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/bootstrap")
def bootstrap(
    payload: BootstrapRequest,
    engine: Engine = Depends(get_db_engine),
    request_id: Optional[str] = Depends(get_request_id),
    admin: str = Depends(require_admin),
) -> dict[str, Any]:
    """
    Import a Beds24 property into a hotel. Admin only.

    Runs synchronously: the response carries the final status. A repeated call
    for a bootstrapped hotel is refused with 409 and makes no remote call.

    Args:
        payload: {propertyId, hotelId, traceId?}
        engine: Database engine

    Returns:
        dict: {success, hotelId, propertyId, traceId, status, counts, completedAt}
    """
    try:
        result = bootstrap_property(
            engine,
            hotel_id=payload.hotel_id,
            property_id=payload.property_id,
            trace_id=payload.trace_id or request_id,
            initiated_by=admin,
        )
    except (Beds24Error, HTTPException):
        raise
    except Exception as e:
        logger.exception("bootstrap_request_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "success": True,
        "hotelId": result.hotel_id,
        "propertyId": result.property_id,
        "traceId": result.trace_id,
        "status": result.status,
        "counts": result.counts,
        "completedAt": result.completed_at.isoformat() if result.completed_at else None,
    }
