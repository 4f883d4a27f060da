"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import ORJSONResponse

from learnhub.config import get_settings
from learnhub.core.logging import get_logger
from learnhub.core.redis import get_redis


logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _redis_ok() -> bool:
    client = get_redis()
    if client is None:
        return False
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.warning("health_redis_ping_failed", error=str(e))
        return False


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - the process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> ORJSONResponse:
    """Readiness probe.

    Ready once the engine is wired (database reachable at startup). Redis is
    reported but optional.
    """
    settings = get_settings()
    database = getattr(request.app.state, "engine", None) is not None
    body: dict[str, Any] = {
        "status": "ready" if database else "degraded",
        "database": database,
        "redis": await _redis_ok(),
        "environment": settings.environment,
        "debug": settings.debug,
    }
    return ORJSONResponse(
        status_code=status.HTTP_200_OK if database else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
