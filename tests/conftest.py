"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  PostGIS-specific features (Geometry columns)
are mocked by using plain String columns in the test models, and the
production repositories are pointed at those models with ``patch``.
"""

from __future__ import annotations

from contextlib import ExitStack
from typing import AsyncGenerator, Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from src.domain.coverage import shop_h3_cell
from src.domain.enums import OrderStatus, PaymentMethod
from src.infrastructure.config_cache import DeliveryConfigCache


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class TestBase(DeclarativeBase):
    pass


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# Mirror the production models but without PostGIS Geometry columns
# (SQLite doesn't support them).

class TestShopModel(TestBase):
    __tablename__ = "shops"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(160), nullable=False)
    address = Column(String(255), nullable=True)
    shop_type = Column(String(60), nullable=True)
    location = Column(String, nullable=True)  # stub for Geometry
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)
    is_open = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TestDeliveryLogicModel(TestBase):
    __tablename__ = "shop_delivery_logic"
    id = Column(Integer, primary_key=True, autoincrement=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), unique=True, nullable=False)
    minimum_order_value = Column(Float, default=200.0, nullable=False)
    small_order_surcharge = Column(Float, default=40.0, nullable=False)
    least_order_value = Column(Float, default=100.0, nullable=False)
    distance_mode = Column(String(10), default="auto", nullable=False)
    max_delivery_fee = Column(Float, default=130.0, nullable=False)
    distance_tiers = Column(JSON, nullable=True)
    beyond_tier_fee_per_unit = Column(Float, default=10.0, nullable=False)
    beyond_tier_distance_unit = Column(Float, default=250.0, nullable=False)
    free_delivery_threshold = Column(Float, default=800.0, nullable=False)
    free_delivery_radius = Column(Float, default=1000.0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class TestDeliveryAreaModel(TestBase):
    __tablename__ = "shop_delivery_areas"
    id = Column(Integer, primary_key=True, autoincrement=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False)
    label = Column(String(120), nullable=True)
    area = Column(String, nullable=True)  # stub for Geometry
    coordinates = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class TestConsumerAddressModel(TestBase):
    __tablename__ = "consumer_addresses"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    title = Column(String(60), nullable=True)
    street_address = Column(String(255), nullable=False)
    city = Column(String(120), nullable=False)
    region = Column(String(120), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    landmark = Column(String(255), nullable=True)
    formatted_address = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TestMerchantItemModel(TestBase):
    __tablename__ = "merchant_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(512), nullable=True)
    price_cents = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TestOrderModel(TestBase):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(20), unique=True, nullable=False)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False)
    user_id = Column(Integer, nullable=False)
    consumer_address_id = Column(
        Integer, ForeignKey("consumer_addresses.id"), nullable=False
    )
    status = Column(
        Enum(OrderStatus, values_callable=_enum_values),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    subtotal_cents = Column(Integer, nullable=False)
    delivery_fee_cents = Column(Integer, nullable=False, default=0)
    surcharge_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False)
    distance_meters = Column(Float, nullable=True)
    payment_method = Column(
        Enum(PaymentMethod, values_callable=_enum_values),
        default=PaymentMethod.CASH,
        nullable=False,
    )
    special_instructions = Column(Text, nullable=True)
    delivery_address = Column(JSON, nullable=True)
    idempotency_key = Column(String(64), nullable=True)
    placed_at = Column(DateTime(timezone=True), server_default=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    out_for_delivery_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    confirmation_time_seconds = Column(Integer, nullable=True)
    preparation_time_seconds = Column(Integer, nullable=True)
    delivery_time_seconds = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "idempotency_key"),)


class TestOrderItemModel(TestBase):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    merchant_item_id = Column(Integer, ForeignKey("merchant_items.id"), nullable=False)
    item_name = Column(String(160), nullable=False)
    item_description = Column(Text, nullable=True)
    item_image_url = Column(String(512), nullable=True)
    item_price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# Production model name -> SQLite-friendly stand-in, per importing module
_MODEL_PATCHES = {
    "src.infrastructure.repositories": {
        "ShopModel": TestShopModel,
        "DeliveryLogicModel": TestDeliveryLogicModel,
        "DeliveryAreaModel": TestDeliveryAreaModel,
        "ConsumerAddressModel": TestConsumerAddressModel,
        "MerchantItemModel": TestMerchantItemModel,
        "OrderModel": TestOrderModel,
        "OrderItemModel": TestOrderItemModel,
    },
    "src.services.ordering": {
        "OrderModel": TestOrderModel,
        "OrderItemModel": TestOrderItemModel,
    },
}


def patch_models() -> ExitStack:
    """Point repositories and services at the test models."""
    stack = ExitStack()
    for module, names in _MODEL_PATCHES.items():
        for name, model in names.items():
            stack.enter_context(patch(f"{module}.{name}", model))
    return stack


# ── Redis doubles ─────────────────────────────────────────────────────


class FakeRedis:
    """In-memory subset of the ``redis.asyncio`` client used by the cache."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed


class BrokenRedis:
    """Every call fails the way an unreachable Redis server does."""

    async def get(self, key):
        raise RedisConnectionError("Connection refused")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("Connection refused")

    async def delete(self, *keys):
        raise RedisConnectionError("Connection refused")


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database with all test tables."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(TestBase.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(TestBase.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    with patch_models():
        async with session_factory() as session:
            yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def config_cache(fake_redis) -> DeliveryConfigCache:
    return DeliveryConfigCache(fake_redis, ttl_seconds=300)


# ── Sample data ───────────────────────────────────────────────────────

# Liberty Market, Lahore
SHOP_LAT, SHOP_LNG = 31.5102, 74.3441
# ~330 m north-east of the shop
CONSUMER_LAT, CONSUMER_LNG = 31.5125, 74.3463


def square_around(lat: float, lng: float, half_width: float = 0.01) -> list[dict]:
    d = half_width
    return [
        {"latitude": lat - d, "longitude": lng - d},
        {"latitude": lat - d, "longitude": lng + d},
        {"latitude": lat + d, "longitude": lng + d},
        {"latitude": lat + d, "longitude": lng - d},
    ]


async def seed_marketplace(session: AsyncSession) -> dict[str, int]:
    """One open shop with a delivery area, an address and two items."""
    shop = TestShopModel(
        name="Gulberg Grocers",
        shop_type="grocery",
        latitude=SHOP_LAT,
        longitude=SHOP_LNG,
        h3_cell=shop_h3_cell(SHOP_LAT, SHOP_LNG, 8),
        is_open=True,
    )
    session.add(shop)
    await session.flush()

    session.add(
        TestDeliveryAreaModel(
            shop_id=shop.id,
            label="Main area",
            coordinates=square_around(SHOP_LAT, SHOP_LNG),
        )
    )
    address = TestConsumerAddressModel(
        user_id=1,
        title="Home",
        street_address="12 Main Boulevard",
        city="Lahore",
        latitude=CONSUMER_LAT,
        longitude=CONSUMER_LNG,
    )
    milk = TestMerchantItemModel(shop_id=shop.id, name="Milk 1L", price_cents=5000)
    rice = TestMerchantItemModel(
        shop_id=shop.id, name="Basmati rice 5kg", price_cents=90000
    )
    session.add_all([address, milk, rice])
    await session.flush()
    await session.commit()
    return {
        "shop_id": shop.id,
        "address_id": address.id,
        "milk_id": milk.id,
        "rice_id": rice.id,
    }
