# ruff: noqa: PLW0603
"""Redis connection management.

Redis is optional for the engine. It backs:
- Advisory catalog caches (never read for correctness)
- Pub/Sub for real-time notification delivery
"""

import redis.asyncio as redis

from learnhub.config import get_settings
from learnhub.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Create the connection pool and ping it.

    Raises:
        redis.ConnectionError: Server unreachable (caller decides to run without it)
    """
    global _redis_client

    settings = get_settings()
    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await client.ping()
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        raise

    _redis_client = client
    logger.info("redis_connected", url=settings.redis_url)
    return client


async def shutdown_redis() -> None:
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


def get_redis() -> redis.Redis | None:
    return _redis_client


# ==============================================================================
# Key and channel names
# ==============================================================================


def notification_channel(user_id: str) -> str:
    """Per-user Pub/Sub channel for new notifications."""
    return f"notifications:user:{user_id}"


def catalog_cache_key(*parts: object) -> str:
    """Advisory catalog cache key, e.g. catalog:program:<id>:instructors."""
    return ":".join(["catalog", *(str(part) for part in parts)])
