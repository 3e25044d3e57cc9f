"""
Domain entities and value objects.

Patterns used
-------------
- **Value Objects** for everything the pricing engine reads or returns:
  ``Coordinate``, ``DistanceTier``, ``FeeBreakdown`` ... are frozen so a
  configuration snapshot or a computed fee cannot drift after the fact.
- **State Pattern** on ``Order``: enforces valid lifecycle transitions
  (pending -> confirmed -> out_for_delivery -> delivered | cancelled) and
  stamps the matching timestamps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from .enums import DistanceMode, ORDER_TRANSITIONS, OrderStatus


# ── Errors ────────────────────────────────────────────────────────────


class PricingError(Exception):
    """Base class for errors raised by the delivery pricing engine."""


class ConfigurationError(PricingError):
    """Merchant delivery settings cannot produce a meaningful fee."""


class InvalidInputError(PricingError):
    """Coordinates, subtotal or distance are not usable for pricing."""


class InvalidStateTransition(Exception):
    """Raised when an order status change violates the state machine."""


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        from .distance import validate_coordinate

        validate_coordinate(self.latitude, self.longitude)


@dataclass(frozen=True)
class DistanceTier:
    max_distance: float  # meters, inclusive upper bound
    fee: float  # currency units


DEFAULT_DISTANCE_TIERS: tuple[DistanceTier, ...] = (
    DistanceTier(200, 20),
    DistanceTier(400, 30),
    DistanceTier(600, 40),
    DistanceTier(800, 50),
    DistanceTier(1000, 60),
)


@dataclass
class DeliveryConfiguration:
    """Per-shop delivery settings.  Amounts in whole currency units."""

    # Order value layer
    minimum_order_value: float = 200.0
    small_order_surcharge: float = 40.0
    least_order_value: float = 100.0
    # Distance layer
    distance_mode: DistanceMode = DistanceMode.AUTO
    max_delivery_fee: float = 130.0
    distance_tiers: list[DistanceTier] = field(
        default_factory=lambda: list(DEFAULT_DISTANCE_TIERS)
    )
    beyond_tier_fee_per_unit: float = 10.0
    beyond_tier_distance_unit: float = 250.0
    # Free delivery layer
    free_delivery_threshold: float = 800.0
    free_delivery_radius: float = 1000.0

    @property
    def effective_tiers(self) -> list[DistanceTier]:
        """Tiers the engine prices with for the current distance mode."""
        if self.distance_mode == DistanceMode.AUTO:
            return list(DEFAULT_DISTANCE_TIERS)
        return list(self.distance_tiers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "minimum_order_value": self.minimum_order_value,
            "small_order_surcharge": self.small_order_surcharge,
            "least_order_value": self.least_order_value,
            "distance_mode": self.distance_mode.value,
            "max_delivery_fee": self.max_delivery_fee,
            "distance_tiers": [
                {"max_distance": t.max_distance, "fee": t.fee}
                for t in self.distance_tiers
            ],
            "beyond_tier_fee_per_unit": self.beyond_tier_fee_per_unit,
            "beyond_tier_distance_unit": self.beyond_tier_distance_unit,
            "free_delivery_threshold": self.free_delivery_threshold,
            "free_delivery_radius": self.free_delivery_radius,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeliveryConfiguration":
        """Build from a stored row / JSON snapshot; missing or null keys
        fall back to the platform defaults."""
        defaults = cls()

        def pick(key: str) -> float:
            value = data.get(key)
            return float(value) if value is not None else getattr(defaults, key)

        raw_tiers = data.get("distance_tiers")
        tiers = (
            [
                DistanceTier(float(t["max_distance"]), float(t["fee"]))
                for t in raw_tiers
            ]
            if raw_tiers is not None
            else list(DEFAULT_DISTANCE_TIERS)
        )
        return cls(
            minimum_order_value=pick("minimum_order_value"),
            small_order_surcharge=pick("small_order_surcharge"),
            least_order_value=pick("least_order_value"),
            distance_mode=DistanceMode(data.get("distance_mode") or "auto"),
            max_delivery_fee=pick("max_delivery_fee"),
            distance_tiers=tiers,
            beyond_tier_fee_per_unit=pick("beyond_tier_fee_per_unit"),
            beyond_tier_distance_unit=pick("beyond_tier_distance_unit"),
            free_delivery_threshold=pick("free_delivery_threshold"),
            free_delivery_radius=pick("free_delivery_radius"),
        )


@dataclass(frozen=True)
class FeeBreakdown:
    base_fee: float
    surcharge: float
    free_delivery_applied: bool
    final_fee: float
    out_of_zone: bool


@dataclass(frozen=True)
class EligibilityResult:
    valid: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class OrderQuote:
    """Gate + distance + fee for one prospective order."""

    subtotal: float
    distance_m: float
    eligibility: EligibilityResult
    breakdown: Optional[FeeBreakdown] = None


@dataclass(frozen=True)
class OrderTotals:
    """Persistence-ready totals, all amounts in integer cents."""

    subtotal_cents: int
    delivery_fee_cents: int
    surcharge_cents: int
    total_cents: int
    distance_meters: float


def to_cents(amount: float) -> int:
    """Whole currency units -> integer cents, rounding half up."""
    return int(
        (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def from_cents(cents: int) -> float:
    return cents / 100


# ── Entities ──────────────────────────────────────────────────────────


# Timestamp stamped when an order enters each status
_STATUS_TIMESTAMPS: dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.OUT_FOR_DELIVERY: "out_for_delivery_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

LIFECYCLE_FIELDS = (
    "status",
    "confirmed_at",
    "out_for_delivery_at",
    "delivered_at",
    "cancelled_at",
    "cancellation_reason",
    "confirmation_time_seconds",
    "preparation_time_seconds",
    "delivery_time_seconds",
)


def _seconds_between(start: Optional[datetime], end: datetime) -> Optional[int]:
    if start is None:
        return None
    # naive timestamps from the store are UTC
    if start.tzinfo is None and end.tzinfo is not None:
        start = start.replace(tzinfo=timezone.utc)
    return int((end - start).total_seconds())


@dataclass
class Order:
    id: Optional[int] = None
    order_number: Optional[str] = None
    shop_id: int = 0
    user_id: int = 0
    status: OrderStatus = OrderStatus.PENDING
    subtotal_cents: int = 0
    delivery_fee_cents: int = 0
    surcharge_cents: int = 0
    total_cents: int = 0
    placed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    out_for_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    confirmation_time_seconds: Optional[int] = None
    preparation_time_seconds: Optional[int] = None
    delivery_time_seconds: Optional[int] = None

    def transition_to(
        self,
        new_status: OrderStatus,
        at: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = ORDER_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        at = at or datetime.now(timezone.utc)
        setattr(self, _STATUS_TIMESTAMPS[new_status], at)

        if new_status == OrderStatus.CONFIRMED:
            self.confirmation_time_seconds = _seconds_between(self.placed_at, at)
        elif new_status == OrderStatus.OUT_FOR_DELIVERY:
            self.preparation_time_seconds = _seconds_between(self.confirmed_at, at)
        elif new_status == OrderStatus.DELIVERED:
            self.delivery_time_seconds = _seconds_between(
                self.out_for_delivery_at, at
            )
        elif new_status == OrderStatus.CANCELLED:
            self.cancellation_reason = reason

        self.status = new_status


def format_order_number(day: datetime, sequence: int) -> str:
    """``ORD-YYYYMMDD-NNNN`` -- sequential per calendar day."""
    return f"ORD-{day:%Y%m%d}-{sequence:04d}"
