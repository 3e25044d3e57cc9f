"""
Delivery configuration loading and saving.

Read path: Redis snapshot -> ``shop_delivery_logic`` row -> platform
defaults (a shop that never opened its settings page still gets priced).
Write path: validate, upsert, commit, then invalidate the snapshot.  The
snapshot is only dropped once the new row is visible to other sessions.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import DeliveryConfiguration
from src.domain.pricing import validate_configuration
from src.infrastructure.config_cache import DeliveryConfigCache
from src.infrastructure.repositories import (
    DeliveryLogicRepository,
    delivery_config_from_row,
)

logger = logging.getLogger(__name__)


class DeliveryConfigService:
    def __init__(self, session: AsyncSession, cache: DeliveryConfigCache):
        self.session = session
        self.repo = DeliveryLogicRepository(session)
        self.cache = cache

    async def get(self, shop_id: int) -> DeliveryConfiguration:
        cached = await self.cache.get(shop_id)
        if cached is not None:
            return cached

        row = await self.repo.get_for_shop(shop_id)
        if row is None:
            logger.info("No delivery logic for shop %s -- using defaults", shop_id)
            return DeliveryConfiguration()

        config = delivery_config_from_row(row)
        await self.cache.set(shop_id, config)
        return config

    async def get_many(self, shop_ids: list[int]) -> dict[int, DeliveryConfiguration]:
        """Configurations for a batch of shops in one query (cache bypassed)."""
        rows = await self.repo.get_for_shops(shop_ids)
        return {
            shop_id: (
                delivery_config_from_row(rows[shop_id])
                if shop_id in rows
                else DeliveryConfiguration()
            )
            for shop_id in shop_ids
        }

    async def save(
        self, shop_id: int, config: DeliveryConfiguration
    ) -> tuple[DeliveryConfiguration, list[str]]:
        """Validate and persist.  Returns the stored config and warnings."""
        warnings = validate_configuration(config)
        row = await self.repo.save(shop_id, config)
        await self.session.commit()
        await self.cache.invalidate(shop_id)
        for warning in warnings:
            logger.warning("Shop %s delivery settings: %s", shop_id, warning)
        return delivery_config_from_row(row), warnings
