from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from sync_beds24.dependencies import get_db_engine
from sync_beds24.errors import Beds24Error
from sync_beds24.schemas.requests import MonitoringRequest
from sync_beds24.services.monitoring import (
    error_analysis,
    health_overview,
    performance_metrics,
    sync_status,
)

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/monitoring")
def monitoring(
    payload: MonitoringRequest,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Operator views: health overview, performance metrics, error analysis, sync status.

    Args:
        payload: {action, hotel_id?, time_range?}
        engine: Database engine

    Returns:
        dict: The requested view
    """
    try:
        if payload.action == "health_overview":
            return health_overview(engine, hotel_id=payload.hotel_id)
        if payload.action == "performance_metrics":
            return performance_metrics(engine, payload.time_range, hotel_id=payload.hotel_id)
        if payload.action == "error_analysis":
            return error_analysis(engine, payload.time_range, hotel_id=payload.hotel_id)
        return sync_status(engine, hotel_id=payload.hotel_id)
    except (Beds24Error, HTTPException):
        raise
    except Exception as e:
        logger.exception("monitoring_request_failed", action=payload.action, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
