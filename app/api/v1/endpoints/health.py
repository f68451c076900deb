"""
Health Check Endpoints

- Basic liveness check
- Detailed health status (database, message log, live chat state)
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

from app.db import session as db_session

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthStatus(BaseModel):
    """Health status response"""
    status: str  # "healthy", "degraded", "unhealthy"
    timestamp: str
    version: str = "1.0.0"
    uptime_seconds: Optional[float] = None


class DetailedHealthStatus(BaseModel):
    """Detailed health status with component checks"""
    status: str
    timestamp: str
    version: str = "1.0.0"
    components: Dict[str, Dict[str, Any]]
    uptime_seconds: Optional[float] = None


# Track service start time
SERVICE_START_TIME = datetime.now(timezone.utc)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_uptime() -> float:
    """Get service uptime in seconds"""
    return (datetime.now(timezone.utc) - SERVICE_START_TIME).total_seconds()


async def check_database() -> Dict[str, Any]:
    """Check database connectivity. An unconfigured database is not a failure."""
    if db_session.AsyncSessionLocal is None:
        return {"status": "healthy", "message": "Database not configured; using in-memory stores"}
    if await db_session.verify_database_connection():
        return {"status": "healthy", "message": "Database connection successful"}
    return {"status": "unhealthy", "message": "Database connection failed"}


async def check_message_log(request: Request) -> Dict[str, Any]:
    """Check the configured message log backend"""
    runtime = request.app.state.runtime
    backend = type(runtime.message_log).__name__
    if runtime.redis_client is None:
        return {"status": "healthy", "backend": backend}
    if await runtime.redis_client.ping():
        return {"status": "healthy", "backend": backend}
    return {"status": "unhealthy", "backend": backend, "message": "Redis ping failed"}


@router.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check():
    """
    Basic health check endpoint (liveness probe).

    Returns 200 if service is running.
    """
    return HealthStatus(
        status="healthy",
        timestamp=_now(),
        uptime_seconds=get_uptime()
    )


@router.get("/health/detailed", response_model=DetailedHealthStatus, tags=["Health"])
async def detailed_health_check(request: Request, response: Response):
    """Detailed health check with component status."""
    components = {
        "database": await check_database(),
        "message_log": await check_message_log(request),
        "chat": {"status": "healthy", **request.app.state.runtime.registry.stats()},
    }

    if all(c["status"] == "healthy" for c in components.values()):
        overall_status = "healthy"
    else:
        overall_status = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return DetailedHealthStatus(
        status=overall_status,
        timestamp=_now(),
        components=components,
        uptime_seconds=get_uptime()
    )
