"""
SQLAlchemy ORM models  (maps to PostgreSQL + PostGIS).

Tables
------
* ``shops``               -- merchant shops with a geo location
* ``shop_delivery_logic`` -- one delivery pricing configuration per shop
* ``shop_delivery_areas`` -- merchant-drawn delivery polygons
* ``consumer_addresses``  -- saved consumer delivery addresses
* ``merchant_items``      -- priced items a shop sells
* ``orders``              -- placed orders, amounts in integer cents
* ``order_items``         -- item snapshots taken at placement time

Indexes
-------
* **GIST** on geometry columns (shop location, delivery area polygon)
  for the ``ST_Contains`` shop search.
* **B-Tree** on ``h3_cell``, ``status``, ``shop_id`` for the fallback
  search and order look-ups.
* **Unique** ``(user_id, idempotency_key)``: a retried placement finds the
  caller's own order, never another user's.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from geoalchemy2 import Geometry

from .database import Base
from src.domain.enums import OrderStatus, PaymentMethod

JSONType = JSON().with_variant(JSONB(), "postgresql")


class ShopModel(Base):
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(160), nullable=False)
    address = Column(String(255), nullable=True)
    shop_type = Column(String(60), nullable=True)

    location = Column(Geometry("POINT", srid=4326), nullable=True)
    # Also stored as plain floats for fast reads (avoids ST_X / ST_Y)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)

    is_open = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_shops_location", "location", postgresql_using="gist"),
        Index("idx_shops_cell", "h3_cell"),
        Index("idx_shops_open", "is_open"),
    )


class DeliveryLogicModel(Base):
    __tablename__ = "shop_delivery_logic"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shop_id = Column(Integer, ForeignKey("shops.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Order value layer (currency units)
    minimum_order_value = Column(Float, default=200.0, nullable=False)
    small_order_surcharge = Column(Float, default=40.0, nullable=False)
    least_order_value = Column(Float, default=100.0, nullable=False)

    # Distance layer
    distance_mode = Column(String(10), default="auto", nullable=False)
    max_delivery_fee = Column(Float, default=130.0, nullable=False)
    distance_tiers = Column(JSONType, nullable=True)  # [{max_distance, fee}, ...]
    beyond_tier_fee_per_unit = Column(Float, default=10.0, nullable=False)
    beyond_tier_distance_unit = Column(Float, default=250.0, nullable=False)

    # Free delivery layer
    free_delivery_threshold = Column(Float, default=800.0, nullable=False)
    free_delivery_radius = Column(Float, default=1000.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DeliveryAreaModel(Base):
    __tablename__ = "shop_delivery_areas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shop_id = Column(Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)
    label = Column(String(120), nullable=True)
    area = Column(Geometry("POLYGON", srid=4326), nullable=False)
    # Vertex list [{latitude, longitude}, ...] for in-process containment
    coordinates = Column(JSONType, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_delivery_areas_area", "area", postgresql_using="gist"),
        Index("idx_delivery_areas_shop", "shop_id"),
    )


class ConsumerAddressModel(Base):
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

    __table_args__ = (Index("idx_addresses_user", "user_id"),)


class MerchantItemModel(Base):
    __tablename__ = "merchant_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shop_id = Column(Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(512), nullable=True)
    price_cents = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_items_shop", "shop_id"),)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(20), unique=True, nullable=False)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False)
    user_id = Column(Integer, nullable=False)
    consumer_address_id = Column(
        Integer, ForeignKey("consumer_addresses.id"), nullable=False
    )
    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        default=OrderStatus.PENDING,
        nullable=False,
    )

    # Integer cents -- converted from currency units at placement
    subtotal_cents = Column(Integer, nullable=False)
    delivery_fee_cents = Column(Integer, nullable=False, default=0)
    surcharge_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False)
    distance_meters = Column(Float, nullable=True)

    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        default=PaymentMethod.CASH,
        nullable=False,
    )
    special_instructions = Column(Text, nullable=True)
    delivery_address = Column(JSONType, nullable=True)  # snapshot at placement
    idempotency_key = Column(String(64), nullable=True)  # unique per user

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
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_shop_status", "shop_id", "status"),
        Index("idx_orders_user", "user_id"),
        UniqueConstraint(
            "user_id", "idempotency_key", name="uq_orders_user_idempotency"
        ),
    )


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    merchant_item_id = Column(Integer, ForeignKey("merchant_items.id"), nullable=False)
    item_name = Column(String(160), nullable=False)
    item_description = Column(Text, nullable=True)
    item_image_url = Column(String(512), nullable=True)
    item_price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_order_items_order", "order_id"),)
