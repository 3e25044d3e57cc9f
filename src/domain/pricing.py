"""
Delivery Pricing Engine
=======================

Pipeline (single pass, no state)
--------------------------------
Eligibility Gate -> Distance -> Tier Resolver -> Surcharge & Free-Delivery

* **Eligibility Gate**: ``subtotal < least_order_value`` rejects the order
  outright.  Returned as a result, never raised.
* **Tier Resolver**: first tier (sorted by ``max_distance``) whose
  ``max_distance >= distance`` wins; beyond the last tier the fee is
  extrapolated::

      last.fee + ceil((distance - last.max_distance) / unit) x fee_per_unit

  and every branch is capped at ``max_delivery_fee``.
* **Free delivery**: ``subtotal >= threshold`` AND ``distance <= radius``
  zeroes *everything*, small-order surcharge included.
* **Surcharge**: ``subtotal < minimum_order_value`` adds
  ``small_order_surcharge``.

Amounts are whole currency units; conversion to cents happens at the
persistence boundary (see ``entities.to_cents``).

Complexity: O(T log T) per call, T = number of tiers.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from .distance import distance_between
from .entities import (
    ConfigurationError,
    Coordinate,
    DeliveryConfiguration,
    DistanceTier,
    EligibilityResult,
    FeeBreakdown,
    InvalidInputError,
    OrderQuote,
)
from .enums import DistanceMode


def _require_non_negative(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise InvalidInputError(f"{name} must be a finite non-negative number, got {value}")


def _finite_tier(tier: DistanceTier) -> bool:
    return math.isfinite(tier.max_distance) and math.isfinite(tier.fee)


# ── Tier Resolver ─────────────────────────────────────────────────────


def resolve_tier_fee(
    distance_m: float,
    tiers: Sequence[DistanceTier],
    beyond_unit: float,
    beyond_fee_per_unit: float,
    max_fee: float,
) -> float:
    """Fee for *distance_m* under a tier table, capped at *max_fee*."""
    _require_non_negative("distance", distance_m)
    if not math.isfinite(max_fee) or max_fee <= 0:
        raise ConfigurationError(f"max_delivery_fee must be positive, got {max_fee}")
    if not all(_finite_tier(t) for t in tiers):
        raise ConfigurationError("Distance tiers must be finite numbers")

    # sorted() is stable: duplicate max_distance keeps source order
    ordered = sorted(tiers, key=lambda t: t.max_distance)

    for tier in ordered:
        if distance_m <= tier.max_distance:
            return min(tier.fee, max_fee)

    if not ordered:
        raise ConfigurationError("No distance tiers configured")
    if not beyond_unit > 0:
        raise ConfigurationError(
            f"beyond_tier_distance_unit must be positive, got {beyond_unit}"
        )

    last = ordered[-1]
    extra_units = math.ceil((distance_m - last.max_distance) / beyond_unit)
    return min(last.fee + extra_units * beyond_fee_per_unit, max_fee)


# ── Surcharge & Free-Delivery Policy ──────────────────────────────────


def is_out_of_zone(distance_m: float, tiers: Sequence[DistanceTier]) -> bool:
    """True past the furthest tier.  Reporting only -- the fee still
    extrapolates."""
    if not tiers:
        return False
    return distance_m > max(t.max_distance for t in tiers)


def qualifies_for_free_delivery(
    subtotal: float, distance_m: float, config: DeliveryConfiguration
) -> bool:
    return (
        subtotal >= config.free_delivery_threshold
        and distance_m <= config.free_delivery_radius
    )


def small_order_surcharge(subtotal: float, config: DeliveryConfiguration) -> float:
    if subtotal < config.minimum_order_value:
        return config.small_order_surcharge
    return 0.0


def compute_total_fee(
    subtotal: float, distance_m: float, config: DeliveryConfiguration
) -> FeeBreakdown:
    _require_non_negative("subtotal", subtotal)
    _require_non_negative("distance", distance_m)

    tiers = config.effective_tiers
    out_of_zone = is_out_of_zone(distance_m, tiers)

    if qualifies_for_free_delivery(subtotal, distance_m, config):
        return FeeBreakdown(
            base_fee=0.0,
            surcharge=0.0,
            free_delivery_applied=True,
            final_fee=0.0,
            out_of_zone=out_of_zone,
        )

    base_fee = resolve_tier_fee(
        distance_m,
        tiers,
        config.beyond_tier_distance_unit,
        config.beyond_tier_fee_per_unit,
        config.max_delivery_fee,
    )
    surcharge = small_order_surcharge(subtotal, config)
    return FeeBreakdown(
        base_fee=base_fee,
        surcharge=surcharge,
        free_delivery_applied=False,
        final_fee=base_fee + surcharge,
        out_of_zone=out_of_zone,
    )


# ── Order Eligibility Gate ────────────────────────────────────────────


def _format_amount(value: float) -> str:
    if float(value).is_integer():
        return f"{value:.0f}"
    return f"{value:.2f}".rstrip("0").rstrip(".")


def check_minimum_order(
    subtotal: float, least_order_value: float, currency: str = "Rs"
) -> EligibilityResult:
    if subtotal < least_order_value:
        amount = _format_amount(least_order_value)
        return EligibilityResult(
            valid=False, message=f"Minimum item value is {currency} {amount}"
        )
    return EligibilityResult(valid=True)


# ── Settings validation ───────────────────────────────────────────────


def validate_configuration(config: DeliveryConfiguration) -> list[str]:
    """Raise ``ConfigurationError`` listing every blocking problem.

    Returns non-blocking warnings.
    """
    problems: list[str] = []

    if not math.isfinite(config.max_delivery_fee) or config.max_delivery_fee <= 0:
        problems.append("max_delivery_fee must be positive")
    if (
        not math.isfinite(config.beyond_tier_distance_unit)
        or config.beyond_tier_distance_unit <= 0
    ):
        problems.append("beyond_tier_distance_unit must be positive")
    for name in (
        "minimum_order_value",
        "small_order_surcharge",
        "least_order_value",
        "beyond_tier_fee_per_unit",
        "free_delivery_threshold",
        "free_delivery_radius",
    ):
        value = getattr(config, name)
        if not math.isfinite(value) or value < 0:
            problems.append(f"{name} must be a non-negative number")

    tiers = config.distance_tiers
    if config.distance_mode == DistanceMode.CUSTOM and not tiers:
        problems.append("At least one distance tier is required")
    if not all(_finite_tier(t) for t in tiers):
        problems.append("Distance tiers must be finite numbers")
    elif any(t.max_distance < 0 or t.fee < 0 for t in tiers):
        problems.append("Distance tiers cannot have negative values")
    if any(b.max_distance <= a.max_distance for a, b in zip(tiers, tiers[1:])):
        problems.append("Distance tiers must be in ascending order")

    if problems:
        raise ConfigurationError("; ".join(problems))

    warnings: list[str] = []
    if config.least_order_value > config.minimum_order_value:
        warnings.append(
            "least_order_value is above minimum_order_value; orders below "
            "minimum_order_value are rejected before any surcharge applies"
        )
    return warnings


# ── Engine facade ─────────────────────────────────────────────────────


class DeliveryPricingEngine:
    """Single entry point shared by order placement and settings preview."""

    def __init__(self, currency: str = "Rs"):
        self.currency = currency

    def price(
        self, subtotal: float, distance_m: float, config: DeliveryConfiguration
    ) -> FeeBreakdown:
        return compute_total_fee(subtotal, distance_m, config)

    def check_eligibility(
        self, subtotal: float, config: DeliveryConfiguration
    ) -> EligibilityResult:
        return check_minimum_order(subtotal, config.least_order_value, self.currency)

    def quote(
        self,
        subtotal: float,
        consumer: Coordinate,
        shop: Coordinate,
        config: DeliveryConfiguration,
    ) -> OrderQuote:
        """Gate first; an ineligible order is never priced."""
        _require_non_negative("subtotal", subtotal)
        distance_m = distance_between(consumer, shop)
        eligibility = self.check_eligibility(subtotal, config)
        if not eligibility.valid:
            return OrderQuote(subtotal, distance_m, eligibility)
        return OrderQuote(
            subtotal, distance_m, eligibility, self.price(subtotal, distance_m, config)
        )

    def listing_fee(
        self,
        consumer: Coordinate,
        shop: Coordinate,
        config: DeliveryConfiguration,
    ) -> tuple[float, float]:
        """(distance, tier fee) shown on shop cards -- no surcharge or free
        delivery, those depend on the basket."""
        distance_m = distance_between(consumer, shop)
        tiers = config.effective_tiers
        fee = resolve_tier_fee(
            distance_m,
            tiers,
            config.beyond_tier_distance_unit,
            config.beyond_tier_fee_per_unit,
            config.max_delivery_fee,
        )
        return distance_m, fee
