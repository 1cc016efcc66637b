"""Health check endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import ORJSONResponse

from src.config import get_settings
from src.core.database import AsyncCassandraConnection
from src.core.redis import ping_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - the process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness() -> ORJSONResponse:
    """Readiness probe.

    Ready means Cassandra is connected. Redis only backs the redeem rate
    limit, which fails open, so a missing Redis is reported but does not
    make the service unready.
    """
    settings = get_settings()
    cassandra_ok = AsyncCassandraConnection.is_connected()
    redis_ok = await ping_redis()

    return ORJSONResponse(
        status_code=status.HTTP_200_OK if cassandra_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if cassandra_ok else "unavailable",
            "cassandra": cassandra_ok,
            "redis": redis_ok,
            "environment": settings.environment,
            "debug": settings.debug,
        },
    )


@router.get("")
async def health() -> dict[str, str]:
    """Service name and version."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
