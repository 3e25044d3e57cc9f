"""
Order quotation and placement
=============================

Flow per request
----------------
1. Sum item prices (integer cents) for the requested quantities.
2. Load the shop's delivery configuration (cache -> DB -> defaults).
3. Resolve consumer address and shop coordinates.
4. ``DeliveryPricingEngine.quote``: eligibility gate, distance, tier fee,
   surcharge / free delivery -- in whole currency units.
5. Convert to cents for persistence.

Placement additionally blocks ineligible orders, snapshots the address and
item details, assigns a per-day ``ORD-YYYYMMDD-NNNN`` number and honours
an optional idempotency key scoped to the user.  The number is a count of
the day's orders plus one; when a concurrent placement takes it first the
insert is retried with a fresh count.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import (
    LIFECYCLE_FIELDS,
    Coordinate,
    Order,
    OrderQuote,
    OrderTotals,
    format_order_number,
    from_cents,
    to_cents,
)
from src.domain.enums import OrderStatus, PaymentMethod
from src.domain.pricing import DeliveryPricingEngine
from src.infrastructure.config_cache import DeliveryConfigCache
from src.infrastructure.models import OrderItemModel, OrderModel
from src.infrastructure.repositories import (
    AddressRepository,
    MerchantItemRepository,
    OrderRepository,
    ShopRepository,
)
from src.services.configuration import DeliveryConfigService
from src.services.errors import OrderConflict, OrderRejected, ResourceNotFound

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


class OrderService:
    def __init__(
        self,
        session: AsyncSession,
        cache: DeliveryConfigCache,
        engine: DeliveryPricingEngine,
    ):
        self.shops = ShopRepository(session)
        self.addresses = AddressRepository(session)
        self.items = MerchantItemRepository(session)
        self.orders = OrderRepository(session)
        self.configs = DeliveryConfigService(session, cache)
        self.engine = engine

    # ── Quotation ─────────────────────────────────────────────────────

    async def quote(
        self,
        *,
        user_id: int,
        shop_id: int,
        address_id: int,
        items: list[tuple[int, int]],
    ) -> tuple[OrderQuote, OrderTotals]:
        """Price a basket.  *items* is ``[(merchant_item_id, quantity)]``."""
        shop = await self.shops.get_by_id(shop_id)
        if shop is None:
            raise ResourceNotFound("Shop not found")
        if shop.latitude is None or shop.longitude is None:
            raise OrderRejected("Shop location is not set")

        address = await self.addresses.get_for_user(address_id, user_id)
        if address is None:
            raise ResourceNotFound(
                "Address not found. Please select a valid delivery address."
            )

        subtotal_cents = await self._subtotal_cents(shop_id, items)
        config = await self.configs.get(shop_id)

        quote = self.engine.quote(
            from_cents(subtotal_cents),
            Coordinate(address.latitude, address.longitude),
            Coordinate(shop.latitude, shop.longitude),
            config,
        )
        return quote, self._totals(subtotal_cents, quote)

    async def _subtotal_cents(self, shop_id: int, items: list[tuple[int, int]]) -> int:
        if not items:
            raise OrderRejected("Order has no items")
        found = await self.items.get_many(shop_id, [item_id for item_id, _ in items])
        missing = sorted({item_id for item_id, _ in items} - found.keys())
        if missing:
            raise OrderRejected(f"Items not available from this shop: {missing}")
        return sum(found[item_id].price_cents * qty for item_id, qty in items)

    @staticmethod
    def _totals(subtotal_cents: int, quote: OrderQuote) -> OrderTotals:
        if quote.breakdown is None:
            fee_cents = surcharge_cents = 0
        else:
            fee_cents = to_cents(quote.breakdown.base_fee)
            surcharge_cents = to_cents(quote.breakdown.surcharge)
        return OrderTotals(
            subtotal_cents=subtotal_cents,
            delivery_fee_cents=fee_cents,
            surcharge_cents=surcharge_cents,
            total_cents=subtotal_cents + fee_cents + surcharge_cents,
            distance_meters=quote.distance_m,
        )

    # ── Placement ─────────────────────────────────────────────────────

    async def place(
        self,
        *,
        user_id: int,
        shop_id: int,
        address_id: int,
        items: list[tuple[int, int]],
        payment_method: PaymentMethod = PaymentMethod.CASH,
        special_instructions: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> OrderModel:
        if idempotency_key:
            existing = await self.orders.get_by_idempotency_key(
                user_id, idempotency_key
            )
            if existing:
                return existing

        quote, totals = await self.quote(
            user_id=user_id, shop_id=shop_id, address_id=address_id, items=items
        )
        if not quote.eligibility.valid:
            logger.info(
                "Order rejected for shop %s: %s", shop_id, quote.eligibility.message
            )
            raise OrderRejected(quote.eligibility.message)

        address = await self.addresses.get_for_user(address_id, user_id)
        merchant_items = await self.items.get_many(shop_id, [i for i, _ in items])
        delivery_address = {
            "id": address.id,
            "title": address.title,
            "street_address": address.street_address,
            "city": address.city,
            "region": address.region,
            "latitude": address.latitude,
            "longitude": address.longitude,
            "landmark": address.landmark,
            "formatted_address": address.formatted_address,
        }
        item_snapshots = [
            dict(
                merchant_item_id=item_id,
                item_name=merchant_items[item_id].name,
                item_description=merchant_items[item_id].description,
                item_image_url=merchant_items[item_id].image_url,
                item_price_cents=merchant_items[item_id].price_cents,
                quantity=qty,
                subtotal_cents=merchant_items[item_id].price_cents * qty,
            )
            for item_id, qty in items
        ]
        now = datetime.now(timezone.utc)

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            sequence = await self.orders.count_numbers_for_day(now) + 1
            number = format_order_number(now, sequence)
            order = OrderModel(
                order_number=number,
                shop_id=shop_id,
                user_id=user_id,
                consumer_address_id=address_id,
                status=OrderStatus.PENDING,
                subtotal_cents=totals.subtotal_cents,
                delivery_fee_cents=totals.delivery_fee_cents,
                surcharge_cents=totals.surcharge_cents,
                total_cents=totals.total_cents,
                distance_meters=totals.distance_meters,
                payment_method=payment_method,
                special_instructions=special_instructions,
                delivery_address=delivery_address,
                idempotency_key=idempotency_key,
                placed_at=now,
            )
            order_items = [OrderItemModel(**snapshot) for snapshot in item_snapshots]
            try:
                order = await self.orders.create(order, order_items)
            except IntegrityError:
                # A concurrent retry with the same key won the insert
                if idempotency_key:
                    existing = await self.orders.get_by_idempotency_key(
                        user_id, idempotency_key
                    )
                    if existing:
                        return existing
                logger.warning(
                    "Order number %s taken (attempt %d/%d)",
                    number,
                    attempt,
                    ORDER_NUMBER_ATTEMPTS,
                )
                continue

            logger.info(
                "Order %s placed: total=%d cents (fee=%d, surcharge=%d)",
                order.order_number,
                totals.total_cents,
                totals.delivery_fee_cents,
                totals.surcharge_cents,
            )
            return order

        raise OrderConflict("Could not assign an order number, please retry")

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def change_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        reason: Optional[str] = None,
    ) -> OrderModel:
        """Apply a lifecycle transition; raises ``InvalidStateTransition``."""
        row = await self.orders.get_by_id(order_id)
        if row is None:
            raise ResourceNotFound("Order not found")

        order = Order(
            id=row.id,
            status=OrderStatus(row.status),
            placed_at=row.placed_at,
            **{f: getattr(row, f) for f in LIFECYCLE_FIELDS if f != "status"},
        )
        order.transition_to(new_status, reason=reason)
        for f in LIFECYCLE_FIELDS:
            setattr(row, f, getattr(order, f))
        logger.info("Order %s -> %s", row.order_number, new_status.value)
        return row
