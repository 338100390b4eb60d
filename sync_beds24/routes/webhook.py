"""Beds24 webhook receiver route."""

import base64
import binascii
import secrets
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from sync_beds24.config import WEBHOOK_PASSWORD, WEBHOOK_USERNAME
from sync_beds24.dependencies import get_db_engine
from sync_beds24.services.webhooks import receive_webhook

router = APIRouter()
logger = structlog.get_logger(__name__)


def validate_basic_auth(auth_header: str | None) -> bool:
    """
    Validate HTTP Basic Auth credentials against the configured webhook credentials.

    Args:
        auth_header: Authorization header value (e.g., "Basic dXNlcjpwYXNz")

    Returns:
        bool: True if credentials match, False otherwise (always False when unconfigured)
    """
    if not WEBHOOK_USERNAME or not WEBHOOK_PASSWORD:
        return False
    if not auth_header or not auth_header.startswith("Basic "):
        return False

    try:
        encoded_credentials = auth_header.replace("Basic ", "", 1)
        decoded_credentials = base64.b64decode(encoded_credentials).decode("utf-8")
        username, password = decoded_credentials.split(":", 1)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.warning("webhook_auth_header_malformed")
        return False

    return secrets.compare_digest(username, WEBHOOK_USERNAME) and secrets.compare_digest(
        password, WEBHOOK_PASSWORD
    )


@router.post("/webhook")
async def receive_beds24_webhook(
    request: Request, engine: Engine = Depends(get_db_engine)
) -> JSONResponse:
    """
    Handle incoming Beds24 webhook deliveries.

    Every authenticated JSON object is stored. Booking deliveries are applied
    through the ID map; anything that cannot be applied is kept with its
    processing error and still acknowledged with 200.

    Expected booking payload from Beds24:
        {
            "timeStamp": "2026-10-19T10:00:00Z",
            "booking": {"id": 123, "propertyId": 1001, "arrival": "...", ...}
        }

    Args:
        request: FastAPI request containing webhook payload
        engine: Database engine

    Returns:
        JSONResponse: {success, webhookId, type, processed, error}
    """
    if not validate_basic_auth(request.headers.get("Authorization")):
        logger.warning("webhook_authentication_failed")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Unauthorized"},
        )

    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning("webhook_invalid_json")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid JSON"},
        )
    if not isinstance(payload, dict):
        logger.warning("webhook_payload_not_object", payload_type=type(payload).__name__)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Payload must be a JSON object"},
        )

    logger.info(
        "webhook_received",
        property_id=payload.get("propertyId"),
        keys=sorted(payload.keys()),
    )

    try:
        result = receive_webhook(engine, payload)
    except Exception as e:
        logger.exception("webhook_processing_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    return JSONResponse(content=result.to_dict())
