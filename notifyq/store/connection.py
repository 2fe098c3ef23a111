"""
Redis connection management.
Handles the shared async Redis client used by the queue store.
"""

import logging

from redis.asyncio import Redis

from notifyq.config import get_settings

logger = logging.getLogger(__name__)

# Global client instance
_redis: Redis | None = None


def create_redis(url: str | None = None) -> Redis:
    """
    Create a new async Redis client.

    Args:
        url: Redis URL. Defaults to the configured ``redis_url``.

    Returns:
        Redis: A client that decodes responses to ``str``.
    """
    settings = get_settings()
    return Redis.from_url(
        url or settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
        health_check_interval=30,
    )


async def init_redis() -> Redis:
    """
    Initialize the process-wide Redis client.
    Should be called on application or worker startup.
    """
    global _redis
    if _redis is None:
        _redis = create_redis()
        logger.info("Redis connection initialized")
    return _redis


async def close_redis() -> None:
    """
    Close the process-wide Redis client.
    Should be called on application or worker shutdown.
    """
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
        logger.info("Redis connection closed")
