"""Redis async connection pool shared by the configuration cache."""

import redis.asyncio as aioredis

from src.config import settings
from .config_cache import DeliveryConfigCache

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_pool)


async def get_config_cache() -> DeliveryConfigCache:
    return DeliveryConfigCache(
        await get_redis(), ttl_seconds=settings.delivery_config_cache_ttl_seconds
    )


async def close_redis() -> None:
    await _pool.disconnect()
