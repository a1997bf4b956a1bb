"""Health check endpoints."""
import time

import redis
from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from rcm.utils.clock import utcnow
from rcm.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)

VERSION = "1.0.0"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness: the API process is up."""
    return HealthResponse(status="healthy", version=VERSION)


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """
    Readiness: database and cache connectivity.

    `status` is "unhealthy" when the database is down and "degraded" when
    only the cache is down (posting still works without it).
    """
    components = {}

    start = time.perf_counter()
    try:
        with request.app.state.data_store.session() as db:
            db.execute(text("SELECT 1"))
        components["database"] = {"status": "healthy", "response_time_ms": round((time.perf_counter() - start) * 1000, 2)}
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        components["database"] = {"status": "unhealthy", "error": str(e)}

    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        components["cache"] = {"status": "disabled"}
    else:
        start = time.perf_counter()
        try:
            cache.redis.ping()
            components["cache"] = {"status": "healthy", "response_time_ms": round((time.perf_counter() - start) * 1000, 2)}
        except redis.RedisError as e:
            logger.warning("Cache health check failed", error=str(e))
            components["cache"] = {"status": "unhealthy", "error": str(e)}

    if components["database"]["status"] != "healthy":
        overall = "unhealthy"
    elif components["cache"]["status"] == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "status": overall,
        "version": VERSION,
        "timestamp": utcnow().isoformat(),
        "components": components,
    }
