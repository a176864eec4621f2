"""
Omnivore API - Health Check Route
=================================

What:  GET /health for Docker health checks and load balancer probes.
How:   SELECT 1 against the database, the storage backend's own probe, and
       the analytics circuit breaker state.

Status levels:
    - healthy:   database and storage reachable (HTTP 200)
    - degraded:  analytics circuit open (HTTP 200, uploads still work)
    - unhealthy: database or storage unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from omnivore_api import __version__
from omnivore_api.database import engine
from omnivore_api.schemas.page import HealthResponse
from omnivore_api.services.analytics_service import analytics_service
from omnivore_api.services.storage_base import get_storage_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    storage_status = "available"
    analytics_status = "available"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    try:
        if not await get_storage_backend().health_check():
            storage_status = "unavailable"
            overall = "unhealthy"
    except Exception as e:
        storage_status = "unavailable"
        overall = "unhealthy"
        logger.warning("Health check: storage unreachable: %s", str(e))

    if not analytics_service.enabled:
        analytics_status = "disabled"
    else:
        analytics_status = analytics_service.circuit_breaker.status
    if analytics_status == "circuit_open":
        overall = "degraded" if overall != "unhealthy" else overall

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage=storage_status,
        analytics=analytics_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
