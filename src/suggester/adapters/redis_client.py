# Author: Bradley R. Kinnard — cache money

"""
Async redis connection for the local-dev store. Single instance, lazy init, cleaned up on shutdown.
"""

import logging
from redis.asyncio import Redis

from src.suggester.config import settings

log = logging.getLogger(__name__)

_redis: Redis | None = None


async def get_redis() -> Redis:
    """Get or create redis connection. Pooled, so calling it per write is fine."""
    global _redis
    if _redis is None:
        log.info(f"connecting to redis at {settings.redis_url}")
        _redis = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
        log.info("redis connection closed")
