"""
Delivery settings & fee endpoints
=================================

GET  /api/v1/shops/{shop_id}/delivery-logic     -- stored settings (or defaults)
PUT  /api/v1/shops/{shop_id}/delivery-logic     -- validate + save settings
POST /api/v1/delivery-logic/preview             -- price a draft config
GET  /api/v1/shops/{shop_id}/delivery-fee       -- listing fee for a consumer point
GET  /api/v1/shops/{shop_id}/delivery-areas     -- list delivery polygons
POST /api/v1/shops/{shop_id}/delivery-areas     -- add a delivery polygon
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_config_cache, get_db, get_pricing_engine
from src.api.middleware import limiter
from src.api.schemas import (
    DeliveryAreaCreateRequest,
    DeliveryAreaResponse,
    DeliveryLogicPayload,
    DeliveryLogicResponse,
    EligibilityResponse,
    FeeBreakdownResponse,
    FeePreviewRequest,
    FeePreviewResponse,
    ShopFeeResponse,
)
from src.domain.coverage import overlaps_existing
from src.domain.entities import Coordinate
from src.domain.pricing import DeliveryPricingEngine, validate_configuration
from src.infrastructure.config_cache import DeliveryConfigCache
from src.infrastructure.repositories import (
    DeliveryAreaRepository,
    ShopRepository,
    area_polygon,
)
from src.services.configuration import DeliveryConfigService

router = APIRouter(tags=["delivery"])


async def _require_shop(db: AsyncSession, shop_id: int):
    shop = await ShopRepository(db).get_by_id(shop_id)
    if not shop:
        raise HTTPException(status_code=404, detail="Shop not found")
    return shop


@router.get(
    "/shops/{shop_id}/delivery-logic",
    response_model=DeliveryLogicResponse,
    summary="Get a shop's delivery settings",
)
@limiter.limit("100/minute")
async def get_delivery_logic(
    request: Request,
    shop_id: int,
    db: AsyncSession = Depends(get_db),
    cache: DeliveryConfigCache = Depends(get_config_cache),
):
    await _require_shop(db, shop_id)
    config = await DeliveryConfigService(db, cache).get(shop_id)
    return DeliveryLogicResponse(
        shop_id=shop_id, **DeliveryLogicPayload.from_domain(config).model_dump()
    )


@router.put(
    "/shops/{shop_id}/delivery-logic",
    response_model=DeliveryLogicResponse,
    summary="Save a shop's delivery settings",
    description=(
        "Creates the settings if the shop has none, otherwise updates them. "
        "Blocking problems return 422; non-blocking ones come back as warnings."
    ),
)
@limiter.limit("100/minute")
async def save_delivery_logic(
    request: Request,
    shop_id: int,
    body: DeliveryLogicPayload,
    db: AsyncSession = Depends(get_db),
    cache: DeliveryConfigCache = Depends(get_config_cache),
):
    await _require_shop(db, shop_id)
    stored, warnings = await DeliveryConfigService(db, cache).save(
        shop_id, body.to_domain()
    )
    return DeliveryLogicResponse(
        shop_id=shop_id,
        warnings=warnings,
        **DeliveryLogicPayload.from_domain(stored).model_dump(),
    )


@router.post(
    "/delivery-logic/preview",
    response_model=FeePreviewResponse,
    summary="Preview fees for draft delivery settings",
)
@limiter.limit("100/minute")
async def preview_delivery_fee(
    request: Request,
    body: FeePreviewRequest,
    engine: DeliveryPricingEngine = Depends(get_pricing_engine),
):
    config = body.config.to_domain()
    warnings = validate_configuration(config)
    return FeePreviewResponse(
        eligibility=EligibilityResponse.from_domain(
            engine.check_eligibility(body.subtotal, config)
        ),
        breakdown=FeeBreakdownResponse.from_domain(
            engine.price(body.subtotal, body.distance_m, config)
        ),
        warnings=warnings,
    )


@router.get(
    "/shops/{shop_id}/delivery-fee",
    response_model=ShopFeeResponse,
    summary="Delivery fee from a consumer location to a shop",
)
@limiter.limit("100/minute")
async def get_shop_delivery_fee(
    request: Request,
    shop_id: int,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    db: AsyncSession = Depends(get_db),
    cache: DeliveryConfigCache = Depends(get_config_cache),
    engine: DeliveryPricingEngine = Depends(get_pricing_engine),
):
    shop = await _require_shop(db, shop_id)
    if shop.latitude is None or shop.longitude is None:
        raise HTTPException(status_code=422, detail="Shop location is not set")

    config = await DeliveryConfigService(db, cache).get(shop_id)
    distance_m, fee = engine.listing_fee(
        Coordinate(lat, lng), Coordinate(shop.latitude, shop.longitude), config
    )
    return ShopFeeResponse(shop_id=shop_id, distance_m=distance_m, delivery_fee=fee)


@router.get(
    "/shops/{shop_id}/delivery-areas",
    response_model=list[DeliveryAreaResponse],
    summary="List a shop's delivery areas",
)
@limiter.limit("100/minute")
async def list_delivery_areas(
    request: Request,
    shop_id: int,
    db: AsyncSession = Depends(get_db),
):
    await _require_shop(db, shop_id)
    return await DeliveryAreaRepository(db).list_for_shop(shop_id)


@router.post(
    "/shops/{shop_id}/delivery-areas",
    status_code=201,
    response_model=DeliveryAreaResponse,
    summary="Add a delivery area",
    responses={409: {"description": "Overlaps an existing delivery area."}},
)
@limiter.limit("100/minute")
async def create_delivery_area(
    request: Request,
    shop_id: int,
    body: DeliveryAreaCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    await _require_shop(db, shop_id)
    repo = DeliveryAreaRepository(db)

    polygon = [Coordinate(c.latitude, c.longitude) for c in body.coordinates]
    existing = [area_polygon(a) for a in await repo.list_for_shop(shop_id)]
    if overlaps_existing(polygon, existing):
        raise HTTPException(
            status_code=409, detail="Delivery area overlaps an existing area"
        )
    return await repo.create(shop_id, body.label, polygon)
