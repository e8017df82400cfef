"""
Redis client - item detail cache.
Challenge: Connection pooling, fail gracefully when Redis is down.
Design: Cache misses and write failures degrade to a DB read; they never fail a request.
"""

import json
import logging
from typing import Any

from redis.asyncio import Redis

from studyswap.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Shared async Redis client (connection pool managed by redis-py)
_redis: Redis | None = None


async def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=1,
        )
    return _redis


async def cache_get(key: str) -> str | None:
    """Get value from cache. Returns None on miss or error."""
    try:
        client = await get_redis()
        return await client.get(key)
    except Exception as e:
        logger.debug("cache_get(%s) failed: %s", key, e)
        return None


async def cache_set(key: str, value: str | dict[str, Any], ttl_seconds: int = 300) -> bool:
    """Set value in cache with TTL. Dict is JSON-serialized."""
    try:
        client = await get_redis()
        if isinstance(value, dict):
            value = json.dumps(value)
        await client.setex(key, ttl_seconds, value)
        return True
    except Exception as e:
        logger.debug("cache_set(%s) failed: %s", key, e)
        return False


async def cache_delete(key: str) -> bool:
    """Invalidate cache key (e.g. after an item status change)."""
    try:
        client = await get_redis()
        await client.delete(key)
        return True
    except Exception as e:
        logger.warning("cache_delete(%s) failed, entry may be stale until TTL: %s", key, e)
        return False
