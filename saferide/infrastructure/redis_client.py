"""Redis async connection pool (notification fan-out and worker lock)."""

import redis.asyncio as aioredis

from saferide.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


def redis_client() -> aioredis.Redis:
    return aioredis.Redis(connection_pool=_pool)


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return redis_client()
