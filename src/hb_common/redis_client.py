"""Redis client factory — used for short-lived job locks only.

NOT used for balance caching (balances always go through PostgreSQL).
"""

import redis.asyncio as aioredis
from redis.asyncio.lock import Lock

from config.settings import settings

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Get or create the Redis connection pool."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


def job_lock(redis: aioredis.Redis, name: str, ttl_seconds: int) -> Lock:
    """Non-blocking lock for a periodic job; expires after ``ttl_seconds``."""
    return redis.lock(f"hb:lock:{name}", timeout=ttl_seconds, blocking=False)
