"""
Shop search by consumer location
================================

Primary path
------------
PostGIS ``ST_Contains`` over every delivery-area polygon, bounded by
``shop_search_timeout_seconds``.

Fallback path
-------------
1. **Spatial binning** -- open shops whose H3 cell lies within
   ``shop_search_ring_size`` rings of the consumer's cell.
2. **Containment** -- keep shops with a delivery area containing the
   point (ray casting in-process).
3. Order by Haversine distance, cap at ``shop_search_fallback_limit``.

A timeout or database error on the primary path counts as a failure on the
app's ``CircuitBreaker``; while the breaker is open the primary path is not
attempted at all.

Every result carries ``distance_m`` and the listing ``delivery_fee`` (tier
fee only -- surcharge and free delivery depend on the basket).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.breaker import CircuitBreaker
from src.domain.coverage import nearby_cells, point_in_polygon
from src.domain.distance import haversine_m
from src.domain.entities import ConfigurationError, Coordinate
from src.domain.pricing import DeliveryPricingEngine
from src.infrastructure.config_cache import DeliveryConfigCache
from src.infrastructure.models import ShopModel
from src.infrastructure.repositories import (
    DeliveryAreaRepository,
    ShopRepository,
    area_polygon,
)
from src.services.configuration import DeliveryConfigService

logger = logging.getLogger(__name__)


@dataclass
class ShopListing:
    shop: ShopModel
    distance_m: Optional[float] = None
    delivery_fee: Optional[float] = None


class ShopSearchService:
    def __init__(
        self,
        session: AsyncSession,
        breaker: CircuitBreaker,
        cache: DeliveryConfigCache,
        engine: DeliveryPricingEngine,
    ):
        self.shops = ShopRepository(session)
        self.areas = DeliveryAreaRepository(session)
        self.configs = DeliveryConfigService(session, cache)
        self.breaker = breaker
        self.engine = engine

    async def find_by_location(self, lat: float, lng: float) -> list[ShopListing]:
        consumer = Coordinate(lat, lng)
        shops = await self._find_shops(consumer)
        return await self._with_fees(consumer, shops)

    # ── Internals ─────────────────────────────────────────────────────

    async def _find_shops(self, consumer: Coordinate) -> list[ShopModel]:
        if not self.breaker.allow_request():
            logger.info("Shop search breaker open -- using fallback")
            return await self._fallback(consumer)

        try:
            shops = await asyncio.wait_for(
                self.shops.find_by_delivery_area(
                    consumer.latitude, consumer.longitude
                ),
                timeout=settings.shop_search_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self.breaker.record_failure()
            logger.warning(
                "Spatial shop search timed out (%d consecutive failures)",
                self.breaker.failure_count,
            )
            return await self._fallback(consumer)
        except SQLAlchemyError:
            self.breaker.record_failure()
            logger.exception("Spatial shop search failed -- using fallback")
            return await self._fallback(consumer)

        self.breaker.record_success()
        return shops

    async def _fallback(self, consumer: Coordinate) -> list[ShopModel]:
        cells = nearby_cells(
            consumer.latitude,
            consumer.longitude,
            settings.h3_resolution,
            settings.shop_search_ring_size,
        )
        candidates = await self.shops.get_open_in_cells(cells)
        areas = await self.areas.list_for_shops([s.id for s in candidates])

        covering = [
            shop
            for shop in candidates
            if any(
                point_in_polygon(consumer, area_polygon(area))
                for area in areas.get(shop.id, [])
            )
        ]
        covering.sort(
            key=lambda s: haversine_m(
                consumer.latitude, consumer.longitude, s.latitude, s.longitude
            )
        )
        logger.info(
            "Fallback shop search: %d candidates, %d covering",
            len(candidates),
            len(covering),
        )
        return covering[: settings.shop_search_fallback_limit]

    async def _with_fees(
        self, consumer: Coordinate, shops: list[ShopModel]
    ) -> list[ShopListing]:
        configs = await self.configs.get_many([s.id for s in shops])
        listings: list[ShopListing] = []
        for shop in shops:
            if shop.latitude is None or shop.longitude is None:
                logger.warning("Shop %s (%s) missing coordinates", shop.id, shop.name)
                listings.append(ShopListing(shop))
                continue
            try:
                distance_m, fee = self.engine.listing_fee(
                    consumer,
                    Coordinate(shop.latitude, shop.longitude),
                    configs[shop.id],
                )
            except ConfigurationError as exc:
                logger.warning("Shop %s cannot be priced: %s", shop.id, exc)
                listings.append(ShopListing(shop))
                continue
            listings.append(ShopListing(shop, distance_m, fee))
        return listings
