"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    ConsumerAddressModel,
    DeliveryAreaModel,
    DeliveryLogicModel,
    MerchantItemModel,
    OrderItemModel,
    OrderModel,
    ShopModel,
)
from src.domain.entities import Coordinate, DeliveryConfiguration

CONFIG_COLUMNS = (
    "minimum_order_value",
    "small_order_surcharge",
    "least_order_value",
    "distance_mode",
    "max_delivery_fee",
    "distance_tiers",
    "beyond_tier_fee_per_unit",
    "beyond_tier_distance_unit",
    "free_delivery_threshold",
    "free_delivery_radius",
)


def delivery_config_from_row(row: Any) -> DeliveryConfiguration:
    """Map a ``shop_delivery_logic`` row onto the domain configuration."""
    return DeliveryConfiguration.from_dict(
        {column: getattr(row, column) for column in CONFIG_COLUMNS}
    )


def area_polygon(row: Any) -> list[Coordinate]:
    return [Coordinate(p["latitude"], p["longitude"]) for p in row.coordinates]


def _polygon_wkt(coordinates: list[Coordinate]) -> str:
    ring = list(coordinates)
    if ring[0] != ring[-1]:
        ring.append(ring[0])  # WKT rings must be closed
    points = ", ".join(f"{c.longitude} {c.latitude}" for c in ring)
    return f"SRID=4326;POLYGON(({points}))"


class ShopRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, shop_id: int) -> Optional[ShopModel]:
        return await self.session.get(ShopModel, shop_id)

    async def find_by_delivery_area(self, lat: float, lng: float) -> list[ShopModel]:
        """Open shops with a delivery polygon containing the point (PostGIS)."""
        from geoalchemy2.functions import ST_Contains, ST_MakePoint, ST_SetSRID

        point = ST_SetSRID(ST_MakePoint(lng, lat), 4326)
        result = await self.session.execute(
            select(ShopModel)
            .join(DeliveryAreaModel, DeliveryAreaModel.shop_id == ShopModel.id)
            .where(ShopModel.is_open.is_(True))
            .where(ST_Contains(DeliveryAreaModel.area, point))
            .distinct()
        )
        return list(result.scalars().all())

    async def get_open_in_cells(self, cells: set[str]) -> list[ShopModel]:
        result = await self.session.execute(
            select(ShopModel)
            .where(ShopModel.is_open.is_(True))
            .where(ShopModel.h3_cell.in_(cells))
        )
        return list(result.scalars().all())


class DeliveryLogicRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_shop(self, shop_id: int) -> Optional[DeliveryLogicModel]:
        result = await self.session.execute(
            select(DeliveryLogicModel).where(DeliveryLogicModel.shop_id == shop_id)
        )
        return result.scalar_one_or_none()

    async def get_for_shops(self, shop_ids: list[int]) -> dict[int, DeliveryLogicModel]:
        if not shop_ids:
            return {}
        result = await self.session.execute(
            select(DeliveryLogicModel).where(DeliveryLogicModel.shop_id.in_(shop_ids))
        )
        return {row.shop_id: row for row in result.scalars().all()}

    async def save(
        self, shop_id: int, config: DeliveryConfiguration
    ) -> DeliveryLogicModel:
        """Create the shop's configuration, or update it in place."""
        values = config.to_dict()
        row = await self.get_for_shop(shop_id)
        if row is None:
            row = DeliveryLogicModel(shop_id=shop_id, **values)
            self.session.add(row)
        else:
            for column, value in values.items():
                setattr(row, column, value)
        await self.session.flush()
        return row


class DeliveryAreaRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_shop(self, shop_id: int) -> list[DeliveryAreaModel]:
        result = await self.session.execute(
            select(DeliveryAreaModel)
            .where(DeliveryAreaModel.shop_id == shop_id)
            .order_by(DeliveryAreaModel.id)
        )
        return list(result.scalars().all())

    async def list_for_shops(
        self, shop_ids: list[int]
    ) -> dict[int, list[DeliveryAreaModel]]:
        areas: dict[int, list[DeliveryAreaModel]] = {sid: [] for sid in shop_ids}
        if not shop_ids:
            return areas
        result = await self.session.execute(
            select(DeliveryAreaModel).where(DeliveryAreaModel.shop_id.in_(shop_ids))
        )
        for row in result.scalars().all():
            areas[row.shop_id].append(row)
        return areas

    async def create(
        self, shop_id: int, label: Optional[str], coordinates: list[Coordinate]
    ) -> DeliveryAreaModel:
        row = DeliveryAreaModel(
            shop_id=shop_id,
            label=label,
            area=_polygon_wkt(coordinates),
            coordinates=[
                {"latitude": c.latitude, "longitude": c.longitude}
                for c in coordinates
            ],
        )
        self.session.add(row)
        await self.session.flush()
        return row


class AddressRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_user(
        self, address_id: int, user_id: int
    ) -> Optional[ConsumerAddressModel]:
        """Only returns the address if it belongs to *user_id*."""
        result = await self.session.execute(
            select(ConsumerAddressModel)
            .where(ConsumerAddressModel.id == address_id)
            .where(ConsumerAddressModel.user_id == user_id)
        )
        return result.scalar_one_or_none()


class MerchantItemRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_many(
        self, shop_id: int, item_ids: list[int]
    ) -> dict[int, MerchantItemModel]:
        result = await self.session.execute(
            select(MerchantItemModel)
            .where(MerchantItemModel.shop_id == shop_id)
            .where(MerchantItemModel.id.in_(item_ids))
            .where(MerchantItemModel.is_active.is_(True))
        )
        return {row.id: row for row in result.scalars().all()}


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self, order: OrderModel, items: list[OrderItemModel]
    ) -> OrderModel:
        """Insert inside a savepoint so a unique-constraint clash leaves the
        surrounding transaction usable; ``IntegrityError`` propagates."""
        async with self.session.begin_nested():
            self.session.add(order)
            await self.session.flush()
            for item in items:
                item.order_id = order.id
            self.session.add_all(items)
            await self.session.flush()
        return order

    async def get_by_id(self, order_id: int) -> Optional[OrderModel]:
        return await self.session.get(OrderModel, order_id)

    async def get_by_idempotency_key(
        self, user_id: int, key: str
    ) -> Optional[OrderModel]:
        result = await self.session.execute(
            select(OrderModel).where(
                OrderModel.user_id == user_id, OrderModel.idempotency_key == key
            )
        )
        return result.scalar_one_or_none()

    async def get_items(self, order_id: int) -> list[OrderItemModel]:
        result = await self.session.execute(
            select(OrderItemModel)
            .where(OrderItemModel.order_id == order_id)
            .order_by(OrderItemModel.id)
        )
        return list(result.scalars().all())

    async def count_numbers_for_day(self, day: datetime) -> int:
        """Orders already numbered on *day* (``ORD-YYYYMMDD-%``)."""
        result = await self.session.execute(
            select(func.count())
            .select_from(OrderModel)
            .where(OrderModel.order_number.like(f"ORD-{day:%Y%m%d}-%"))
        )
        return result.scalar() or 0
