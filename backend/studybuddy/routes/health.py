"""
StudyBuddy Backend — Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database with SELECT 1 and reports the object store and
       Gemini state from the service container.
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Status levels:
    - healthy:   database reachable, AI and uploads available
    - degraded:  database reachable, but uploads disabled/unreachable or the
                 AI buddy answers from fallback rules (HTTP 200)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from studybuddy import __version__
from studybuddy.container import ServiceContainer
from studybuddy.database import check_connection
from studybuddy.dependencies import get_services
from studybuddy.schemas.common import HealthResponse
from studybuddy.services.gemini_service import CircuitBreaker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(services: ServiceContainer = Depends(get_services)):
    """
    Check the health of the service and its dependencies.

    Gemini is reported from local state (readiness probe, circuit breaker)
    rather than by calling the API, so frequent probes cost no quota.
    """
    db_status = "connected"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        await check_connection()
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Object Store ────────────────────────────────────────────────
    if services.object_store is None:
        store_status = "not_configured"
    elif await services.object_store.health_check():
        store_status = "configured"
    else:
        store_status = "unavailable"

    # ── Check Gemini ──────────────────────────────────────────────────────
    llm = services.llm
    breaker = getattr(llm, "circuit_breaker", None)
    if llm is None:
        gemini_status = "not_configured"
    elif breaker is not None and breaker.state == CircuitBreaker.OPEN:
        gemini_status = "circuit_open"
    elif llm.is_ready:
        gemini_status = "ready"
    else:
        gemini_status = "fallback"

    if overall == "healthy" and (store_status != "configured" or gemini_status != "ready"):
        overall = "degraded"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        object_store=store_status,
        gemini=gemini_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump(by_alias=True))
    return body
