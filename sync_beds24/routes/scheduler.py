from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from sync_beds24.dependencies import get_db_engine, get_request_id
from sync_beds24.errors import Beds24Error
from sync_beds24.schemas.requests import SchedulerRequest
from sync_beds24.services.scheduler import manual_trigger, run_scheduled

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/scheduler")
def trigger_scheduler(
    payload: SchedulerRequest,
    engine: Engine = Depends(get_db_engine),
    request_id: Optional[str] = Depends(get_request_id),
) -> dict[str, Any]:
    """
    Run delta syncs now.

    ``manual_trigger`` syncs one hotel (errors are returned as the response) or
    fans out over every enabled hotel (errors are reported per hotel).
    ``run_scheduled`` runs one scheduler tick, honoring intervals and backoff.

    Args:
        payload: {action, syncType, hotelId?}
        engine: Database engine

    Returns:
        dict: Per-hotel results and aggregate counts
    """
    try:
        if payload.action == "run_scheduled":
            return run_scheduled(engine)
        return manual_trigger(
            engine,
            sync_type=payload.sync_type,
            hotel_id=payload.hotel_id,
            trace_id=request_id,
        )
    except (Beds24Error, HTTPException):
        raise
    except Exception as e:
        logger.exception("scheduler_trigger_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
