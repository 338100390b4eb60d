from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from sync_beds24.dependencies import get_db_engine, get_request_id
from sync_beds24.errors import Beds24Error
from sync_beds24.schemas.requests import RatePushRequest
from sync_beds24.services.rate_push import push_rates

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/rate-push")
def rate_push(
    payload: RatePushRequest,
    engine: Engine = Depends(get_db_engine),
    request_id: Optional[str] = Depends(get_request_id),
) -> dict[str, Any]:
    """
    Push rates, availability and restrictions for a room type over a date range.

    Every batch is attempted. Failed batches come back with their date range so
    the caller can resubmit exactly those.

    Args:
        payload: {hotelId, roomTypeId, dateRange: {startDate, endDate}, updates}
        engine: Database engine

    Returns:
        dict: {batches, successfulBatches, linesTotal, linesSuccessful, status, ...}
    """
    try:
        result = push_rates(
            engine,
            hotel_id=payload.hotel_id,
            room_type_id=payload.room_type_id,
            start_date=payload.date_range.start_date,
            end_date=payload.date_range.end_date,
            updates=payload.updates,
            trace_id=payload.trace_id or request_id,
        )
    except (Beds24Error, HTTPException):
        raise
    except Exception as e:
        logger.exception("rate_push_request_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "batches": result.batches,
        "successfulBatches": result.successful_batches,
        "linesTotal": result.lines_total,
        "linesSuccessful": result.lines_successful,
        "status": result.status,
        "failedBatches": result.failed_batches,
        "historyId": result.history_id,
        "traceId": result.trace_id,
    }
