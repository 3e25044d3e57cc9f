"""
Order endpoints
===============

POST  /api/v1/orders/quote        -- totals in cents + eligibility, nothing stored
POST  /api/v1/orders              -- place an order (201 Created)
GET   /api/v1/orders/{order_id}   -- order with item snapshots
PATCH /api/v1/orders/{order_id}/status -- lifecycle transition
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_config_cache, get_db, get_pricing_engine
from src.api.middleware import limiter
from src.api.schemas import (
    OrderCreateRequest,
    OrderItemResponse,
    OrderQuoteRequest,
    OrderQuoteResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
)
from src.domain.entities import InvalidStateTransition
from src.domain.pricing import DeliveryPricingEngine
from src.infrastructure.config_cache import DeliveryConfigCache
from src.infrastructure.repositories import OrderRepository
from src.services.errors import OrderConflict, OrderRejected, ResourceNotFound
from src.services.ordering import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


async def _order_response(db: AsyncSession, order) -> OrderResponse:
    items = await OrderRepository(db).get_items(order.id)
    response = OrderResponse.model_validate(order)
    response.items = [OrderItemResponse.model_validate(i) for i in items]
    return response


@router.post(
    "/quote",
    response_model=OrderQuoteResponse,
    summary="Calculate order totals",
)
@limiter.limit("100/minute")
async def quote_order(
    request: Request,
    body: OrderQuoteRequest,
    db: AsyncSession = Depends(get_db),
    cache: DeliveryConfigCache = Depends(get_config_cache),
    engine: DeliveryPricingEngine = Depends(get_pricing_engine),
):
    try:
        quote, totals = await OrderService(db, cache, engine).quote(
            user_id=body.user_id,
            shop_id=body.shop_id,
            address_id=body.consumer_address_id,
            items=body.item_pairs(),
        )
    except ResourceNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except OrderRejected as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    breakdown = quote.breakdown
    return OrderQuoteResponse(
        subtotal_cents=totals.subtotal_cents,
        delivery_fee_cents=totals.delivery_fee_cents,
        surcharge_cents=totals.surcharge_cents,
        total_cents=totals.total_cents,
        distance_meters=totals.distance_meters,
        eligible=quote.eligibility.valid,
        message=quote.eligibility.message,
        free_delivery_applied=bool(breakdown and breakdown.free_delivery_applied),
        out_of_zone=bool(breakdown and breakdown.out_of_zone),
    )


@router.post(
    "",
    status_code=201,
    response_model=OrderResponse,
    summary="Place an order",
    responses={422: {"description": "Order below the shop's minimum value."}},
)
@limiter.limit("100/minute")
async def place_order(
    request: Request,
    body: OrderCreateRequest,
    db: AsyncSession = Depends(get_db),
    cache: DeliveryConfigCache = Depends(get_config_cache),
    engine: DeliveryPricingEngine = Depends(get_pricing_engine),
):
    try:
        order = await OrderService(db, cache, engine).place(
            user_id=body.user_id,
            shop_id=body.shop_id,
            address_id=body.consumer_address_id,
            items=body.item_pairs(),
            payment_method=body.payment_method,
            special_instructions=body.special_instructions,
            idempotency_key=body.idempotency_key,
        )
    except ResourceNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except OrderRejected as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except OrderConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return await _order_response(db, order)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get an order",
)
@limiter.limit("100/minute")
async def get_order(
    request: Request,
    order_id: int,
    db: AsyncSession = Depends(get_db),
):
    order = await OrderRepository(db).get_by_id(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return await _order_response(db, order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Advance or cancel an order",
    description=(
        "pending -> confirmed -> out_for_delivery -> delivered; any "
        "non-terminal order can be cancelled."
    ),
)
@limiter.limit("100/minute")
async def update_order_status(
    request: Request,
    order_id: int,
    body: OrderStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    cache: DeliveryConfigCache = Depends(get_config_cache),
    engine: DeliveryPricingEngine = Depends(get_pricing_engine),
):
    try:
        order = await OrderService(db, cache, engine).change_status(
            order_id, body.status, reason=body.cancellation_reason
        )
    except ResourceNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidStateTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return await _order_response(db, order)
