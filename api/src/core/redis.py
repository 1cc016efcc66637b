# ruff: noqa: PLW0603
"""Redis connection management.

Provides the async Redis client used for rate limiting token redemption.
Redis is optional: when it is unreachable the client stays None and
callers fail open.
"""

import redis.asyncio as redis

from src.config import get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

# Global Redis client
_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    # Test connection
    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.close()
        logger.info("redis_disconnected")
        _redis_client = None


def get_redis() -> redis.Redis | None:
    """Get Redis client instance."""
    return _redis_client


async def incr_window(key: str, window: int) -> int | None:
    """Count one hit on a fixed-window counter.

    The TTL is set when the first hit creates the key, so the window starts
    at that hit.

    Args:
        key: Counter key
        window: Window length in seconds

    Returns:
        The count including this hit, or None when Redis is not connected
    """
    client = get_redis()
    if client is None:
        return None

    current = await client.incr(key)
    if current == 1:
        await client.expire(key, window)
    return current


async def ping_redis() -> bool:
    """True if Redis is connected and answers PING."""
    client = get_redis()
    if client is None:
        return False
    try:
        return bool(await client.ping())
    except redis.RedisError as e:
        logger.warning("redis_ping_failed", error=str(e))
        return False
