"""
Internal helpers shared by the Beds24 route handlers.

Maps the sync core's error taxonomy onto HTTP responses and guards admin-only
routes with the X-Admin-Key header.
"""

from __future__ import annotations

import hmac
from typing import Optional

import structlog
from fastapi import Header, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from sync_beds24 import config
from sync_beds24.errors import (
    AuthError,
    Beds24Error,
    ClientError,
    ConnectionNotFound,
    InvalidRequestError,
    MappingNotFound,
    PartialFailure,
    PayloadError,
    PreconditionError,
    RateLimitError,
)
from sync_beds24.services.audit import current_trace_id

logger = structlog.get_logger(__name__)


def status_for(exc: Beds24Error) -> int:
    """
    HTTP status for a sync core error.

    Args:
        exc: Error raised by a service

    Returns:
        int: Status code
    """
    if isinstance(exc, (ConnectionNotFound, MappingNotFound)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, PreconditionError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, AuthError):
        if exc.retryable:
            return status.HTTP_503_SERVICE_UNAVAILABLE
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, (ClientError, PayloadError)):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, InvalidRequestError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, PartialFailure):
        return status.HTTP_207_MULTI_STATUS
    if exc.retryable:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(exc: Beds24Error) -> JSONResponse:
    """
    JSON response for a sync core error: {"error", "category", ...context}.

    Registered as the application's Beds24Error handler, so route handlers let
    these errors propagate.

    Args:
        exc: Error raised by a service

    Returns:
        JSONResponse: Body carrying the error category and the request trace id
    """
    code = status_for(exc)
    content = jsonable_encoder(exc.to_dict())
    trace_id = current_trace_id()
    if trace_id:
        content["trace_id"] = trace_id

    headers = None
    if isinstance(exc, RateLimitError) and exc.resets_in:
        headers = {"Retry-After": str(exc.resets_in)}

    log = logger.warning if code < 500 else logger.error
    log("request_failed", status_code=code, category=exc.category, error=exc.message)
    return JSONResponse(status_code=code, content=content, headers=headers)


def require_admin(x_admin_key: Optional[str] = Header(None)) -> str:
    """
    Dependency guarding admin-only routes.

    Raises:
        HTTPException: 503 if no admin key is configured, 403 on a wrong or missing key
    """
    if not config.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key is not configured",
        )
    if not x_admin_key or not hmac.compare_digest(x_admin_key, config.ADMIN_API_KEY):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin key required")
    return "admin"
