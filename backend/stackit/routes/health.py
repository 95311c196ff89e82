"""
StackIt Backend — Health Check Route
======================================

What:  GET /health for load balancers, container probes and dashboards.
How:   SELECT 1 against the database plus the in-process stats of the pool,
       the response cache and the WebSocket manager.

Status levels:
    healthy:   database reachable (HTTP 200)
    unhealthy: database probe failed (HTTP 503, stop routing traffic here)

The route does not take a request-scoped session: it must answer even when
the pool is exhausted, so it probes through Database.ping() directly.
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from stackit import __version__
from stackit.schemas.common import ApiResponse, DatabaseHealth, HealthData

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=ApiResponse[HealthData],
    responses={503: {"description": "Database unreachable", "model": ApiResponse[HealthData]}},
    summary="Service health check",
)
async def health_check(request: Request):
    database = request.app.state.database
    db_status = "connected"
    try:
        await database.ping()
    except (SQLAlchemyError, OSError, TimeoutError) as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", e)

    healthy = db_status == "connected"
    data = HealthData(
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        environment=request.app.state.settings.environment,
        uptime_seconds=round(time.time() - _start_time, 2),
        database=DatabaseHealth(status=db_status, pool=database.pool_status()),
        cache=request.app.state.cache.stats(),
        realtime=request.app.state.realtime.stats(),
    )
    body = ApiResponse(
        success=healthy,
        message="Service is healthy" if healthy else "Database is unreachable",
        data=data,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump(mode="json"))
