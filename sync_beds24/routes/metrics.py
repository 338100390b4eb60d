"""
Prometheus metrics endpoint.

Exposes every beds24_* metric in the text exposition format for scraping.

Example:
    GET /metrics

    Response:
        # HELP beds24_sync_runs_total Total number of bootstrap and delta sync runs
        # TYPE beds24_sync_runs_total counter
        beds24_sync_runs_total{hotel_id="h1",scope="all",status="success"} 42.0
        ...
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from sync_beds24.cache import token_cache
from sync_beds24.metrics import token_cache_entries

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """
    Prometheus metrics endpoint.

    Point-in-time gauges that are not updated by the sync code itself are
    refreshed here, right before rendering.

    Returns:
        Response: Metrics in Prometheus format with Content-Type: text/plain
    """
    token_cache_entries.set(token_cache.size())
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
