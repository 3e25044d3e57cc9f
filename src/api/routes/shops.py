"""
Shop discovery endpoints
========================

GET /api/v1/shops/nearby?lat=..&lng=.. -- shops delivering to a point,
                                          with distance and delivery fee
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_config_cache,
    get_db,
    get_pricing_engine,
    get_shop_search_breaker,
)
from src.api.middleware import limiter
from src.api.schemas import ShopListingResponse
from src.domain.breaker import CircuitBreaker
from src.domain.pricing import DeliveryPricingEngine
from src.infrastructure.config_cache import DeliveryConfigCache
from src.services.shop_search import ShopSearchService

router = APIRouter(prefix="/shops", tags=["shops"])


@router.get(
    "/nearby",
    response_model=list[ShopListingResponse],
    summary="Find shops whose delivery areas cover a location",
)
@limiter.limit("100/minute")
async def find_nearby_shops(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    db: AsyncSession = Depends(get_db),
    cache: DeliveryConfigCache = Depends(get_config_cache),
    engine: DeliveryPricingEngine = Depends(get_pricing_engine),
    breaker: CircuitBreaker = Depends(get_shop_search_breaker),
):
    listings = await ShopSearchService(db, breaker, cache, engine).find_by_location(
        lat, lng
    )
    return [
        ShopListingResponse(
            id=listing.shop.id,
            name=listing.shop.name,
            address=listing.shop.address,
            shop_type=listing.shop.shop_type,
            latitude=listing.shop.latitude,
            longitude=listing.shop.longitude,
            is_open=listing.shop.is_open,
            distance_m=listing.distance_m,
            delivery_fee=listing.delivery_fee,
        )
        for listing in listings
    ]
