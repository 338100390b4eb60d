"""
Health and readiness check endpoints for Kubernetes.

Health checks are used by container orchestration platforms to determine
if the application should be restarted or if it can receive traffic. The
sync-level health of hotels lives under /beds24/monitoring instead.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from sync_beds24.config import ADMIN_API_KEY
from sync_beds24.db.engine import check_engine_health
from sync_beds24.dependencies import get_db_engine

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health_check() -> JSONResponse:
    """
    Liveness check endpoint.

    Returns:
        JSONResponse with status "ok"

    Example:
        >>> GET /health
        {"status": "ok"}
    """
    return JSONResponse(content={"status": "ok"})


@router.get("/ready")
def readiness_check(engine: Engine = Depends(get_db_engine)) -> JSONResponse:
    """
    Readiness check endpoint.

    Returns 200 if the database is reachable, 503 otherwise. A missing admin
    key is reported but does not block traffic: only admin routes need it.

    Example:
        >>> GET /ready
        {"status": "ready", "checks": {"database": "ok", "admin_key": "configured"}}
    """
    checks = {"admin_key": "configured" if ADMIN_API_KEY else "missing"}

    if check_engine_health(engine):
        checks["database"] = "ok"
        return JSONResponse(content={"status": "ready", "checks": checks})

    logger.error("readiness_check_failed", reason="database_not_accessible")
    checks["database"] = "failed"
    return JSONResponse(
        status_code=503,
        content={"status": "not ready", "checks": checks},
    )
