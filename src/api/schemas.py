"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.domain.entities import (
    DEFAULT_DISTANCE_TIERS,
    DeliveryConfiguration,
    DistanceTier,
    EligibilityResult,
    FeeBreakdown,
)
from src.domain.enums import DistanceMode, OrderStatus, PaymentMethod


# ── Shared ────────────────────────────────────────────────────────────


class CoordinateSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DistanceTierSchema(BaseModel):
    max_distance: float = Field(..., description="Inclusive upper bound in meters.")
    fee: float = Field(..., description="Fee in whole currency units.")


# ── Delivery settings ─────────────────────────────────────────────────


class DeliveryLogicPayload(BaseModel):
    """Merchant delivery settings; amounts in whole currency units."""

    minimum_order_value: float = 200.0
    small_order_surcharge: float = 40.0
    least_order_value: float = 100.0
    distance_mode: DistanceMode = DistanceMode.AUTO
    max_delivery_fee: float = 130.0
    distance_tiers: list[DistanceTierSchema] = Field(
        default_factory=lambda: [
            DistanceTierSchema(max_distance=t.max_distance, fee=t.fee)
            for t in DEFAULT_DISTANCE_TIERS
        ]
    )
    beyond_tier_fee_per_unit: float = 10.0
    beyond_tier_distance_unit: float = 250.0
    free_delivery_threshold: float = 800.0
    free_delivery_radius: float = 1000.0

    def to_domain(self) -> DeliveryConfiguration:
        data = self.model_dump()
        data["distance_tiers"] = [
            DistanceTier(t.max_distance, t.fee) for t in self.distance_tiers
        ]
        return DeliveryConfiguration(**data)

    @classmethod
    def from_domain(cls, config: DeliveryConfiguration) -> "DeliveryLogicPayload":
        return cls(**config.to_dict())


class DeliveryLogicResponse(DeliveryLogicPayload):
    shop_id: int
    warnings: list[str] = []


class FeePreviewRequest(BaseModel):
    config: DeliveryLogicPayload
    subtotal: float = Field(..., description="Example order value, currency units.")
    distance_m: float = Field(..., description="Example delivery distance, meters.")


class FeeBreakdownResponse(BaseModel):
    base_fee: float
    surcharge: float
    free_delivery_applied: bool
    final_fee: float
    out_of_zone: bool

    @classmethod
    def from_domain(cls, breakdown: FeeBreakdown) -> "FeeBreakdownResponse":
        return cls(
            base_fee=breakdown.base_fee,
            surcharge=breakdown.surcharge,
            free_delivery_applied=breakdown.free_delivery_applied,
            final_fee=breakdown.final_fee,
            out_of_zone=breakdown.out_of_zone,
        )


class EligibilityResponse(BaseModel):
    valid: bool
    message: Optional[str] = None

    @classmethod
    def from_domain(cls, result: EligibilityResult) -> "EligibilityResponse":
        return cls(valid=result.valid, message=result.message)


class FeePreviewResponse(BaseModel):
    eligibility: EligibilityResponse
    breakdown: FeeBreakdownResponse
    warnings: list[str] = []


class ShopFeeResponse(BaseModel):
    shop_id: int
    distance_m: float
    delivery_fee: float


# ── Shops & delivery areas ────────────────────────────────────────────


class ShopListingResponse(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    shop_type: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_open: bool
    distance_m: Optional[float] = None
    delivery_fee: Optional[float] = None


class DeliveryAreaCreateRequest(BaseModel):
    label: Optional[str] = Field(None, max_length=120)
    coordinates: list[CoordinateSchema] = Field(..., min_length=3)


class DeliveryAreaResponse(BaseModel):
    id: int
    shop_id: int
    label: Optional[str] = None
    coordinates: list[CoordinateSchema]

    model_config = {"from_attributes": True}


# ── Orders ────────────────────────────────────────────────────────────


class OrderItemRequest(BaseModel):
    merchant_item_id: int
    quantity: int = Field(1, ge=1, le=100)


class OrderQuoteRequest(BaseModel):
    user_id: int
    shop_id: int
    consumer_address_id: int
    items: list[OrderItemRequest] = Field(..., min_length=1)

    def item_pairs(self) -> list[tuple[int, int]]:
        return [(i.merchant_item_id, i.quantity) for i in self.items]


class OrderQuoteResponse(BaseModel):
    subtotal_cents: int
    delivery_fee_cents: int
    surcharge_cents: int
    total_cents: int
    distance_meters: float
    eligible: bool
    message: Optional[str] = None
    free_delivery_applied: bool = False
    out_of_zone: bool = False


class OrderCreateRequest(OrderQuoteRequest):
    payment_method: PaymentMethod = PaymentMethod.CASH
    special_instructions: Optional[str] = Field(None, max_length=500)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double orders on retries.",
    )


class OrderItemResponse(BaseModel):
    id: int
    merchant_item_id: int
    item_name: str
    item_price_cents: int
    quantity: int
    subtotal_cents: int

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    order_number: str
    shop_id: int
    user_id: int
    consumer_address_id: int
    status: OrderStatus
    subtotal_cents: int
    delivery_fee_cents: int
    surcharge_cents: int
    total_cents: int
    distance_meters: Optional[float] = None
    payment_method: PaymentMethod
    special_instructions: Optional[str] = None
    delivery_address: Optional[dict[str, Any]] = None
    placed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    out_for_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    items: list[OrderItemResponse] = []

    model_config = {"from_attributes": True}


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
