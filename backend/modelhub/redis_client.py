"""Optional Redis connection for the shared model catalog.

Without REDIS_URL, or when the server does not answer at startup, every
worker keeps its own in-memory catalog instead.
"""
import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_redis: Optional[Redis] = None


async def init_redis(url: Optional[str]) -> Optional[Redis]:
    global _redis
    if not url:
        return None
    client = Redis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except RedisError as e:
        logger.warning("Redis is unreachable (%s); using per-process catalog cache", e)
        await client.aclose()
        return None
    _redis = client
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None
