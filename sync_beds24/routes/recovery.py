from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from sync_beds24.dependencies import get_db_engine
from sync_beds24.errors import Beds24Error, InvalidRequestError
from sync_beds24.schemas.requests import RecoveryRequest
from sync_beds24.services.recovery import RecoveryOptions, auto_recovery, manual_recovery

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/recovery")
def recovery(
    payload: RecoveryRequest,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Run automatic recovery, or operator-selected recovery primitives.

    Args:
        payload: {action: "auto_recovery"|"manual_recovery", hotel_id?, recovery_options?}
        engine: Database engine

    Returns:
        dict: Recovery report with every action taken
    """
    try:
        if payload.action == "auto_recovery":
            report = auto_recovery(engine, hotel_id=payload.hotel_id)
        else:
            if payload.recovery_options is None:
                raise InvalidRequestError("manual_recovery requires recovery_options")
            options = RecoveryOptions(
                hotel_id=payload.hotel_id,
                **payload.recovery_options.model_dump(),
            )
            report = manual_recovery(engine, options, initiated_by="api")
        return report.to_dict()
    except (Beds24Error, HTTPException):
        raise
    except Exception as e:
        logger.exception("recovery_request_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
