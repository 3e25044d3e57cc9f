"""
Redis snapshot cache for per-shop delivery configurations.

Shop listings price every nearby shop on each request, so the
configuration rows are read far more often than merchants edit them.
Snapshots are JSON under ``delivery_config:<shop_id>`` with a TTL and are
invalidated whenever the merchant saves settings.

Redis is an optimisation only: any Redis error is logged and treated as a
cache miss, the database stays the source of truth.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.domain.entities import DeliveryConfiguration

logger = logging.getLogger(__name__)


class DeliveryConfigCache:
    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 300):
        self.redis = client
        self.ttl = ttl_seconds

    @staticmethod
    def key(shop_id: int) -> str:
        return f"delivery_config:{shop_id}"

    async def get(self, shop_id: int) -> Optional[DeliveryConfiguration]:
        try:
            raw = await self.redis.get(self.key(shop_id))
        except RedisError:
            logger.warning("Config cache read failed for shop %s", shop_id, exc_info=True)
            return None
        if raw is None:
            return None
        return DeliveryConfiguration.from_dict(json.loads(raw))

    async def set(self, shop_id: int, config: DeliveryConfiguration) -> None:
        try:
            await self.redis.set(
                self.key(shop_id), json.dumps(config.to_dict()), ex=self.ttl
            )
        except RedisError:
            logger.warning("Config cache write failed for shop %s", shop_id, exc_info=True)

    async def invalidate(self, shop_id: int) -> None:
        try:
            await self.redis.delete(self.key(shop_id))
        except RedisError:
            logger.warning(
                "Config cache invalidation failed for shop %s", shop_id, exc_info=True
            )
