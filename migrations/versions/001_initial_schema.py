"""Initial schema with PostGIS extension, shops, delivery settings and orders.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from geoalchemy2 import Geometry


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # Enable PostGIS extension
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    # ── shops ─────────────────────────────────────────────────────────
    op.create_table(
        "shops",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("shop_type", sa.String(60), nullable=True),
        sa.Column("location", Geometry("POINT", srid=4326), nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("is_open", sa.Boolean, default=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_shops_location", "shops", ["location"], postgresql_using="gist"
    )
    op.create_index("idx_shops_cell", "shops", ["h3_cell"])
    op.create_index("idx_shops_open", "shops", ["is_open"])

    # ── shop_delivery_logic ───────────────────────────────────────────
    op.create_table(
        "shop_delivery_logic",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "shop_id",
            sa.Integer,
            sa.ForeignKey("shops.id", ondelete="CASCADE"),
            unique=True,
            nullable=False,
        ),
        sa.Column("minimum_order_value", sa.Float, nullable=False, server_default="200"),
        sa.Column("small_order_surcharge", sa.Float, nullable=False, server_default="40"),
        sa.Column("least_order_value", sa.Float, nullable=False, server_default="100"),
        sa.Column("distance_mode", sa.String(10), nullable=False, server_default="auto"),
        sa.Column("max_delivery_fee", sa.Float, nullable=False, server_default="130"),
        sa.Column("distance_tiers", postgresql.JSONB, nullable=True),
        sa.Column("beyond_tier_fee_per_unit", sa.Float, nullable=False, server_default="10"),
        sa.Column("beyond_tier_distance_unit", sa.Float, nullable=False, server_default="250"),
        sa.Column("free_delivery_threshold", sa.Float, nullable=False, server_default="800"),
        sa.Column("free_delivery_radius", sa.Float, nullable=False, server_default="1000"),
        *_timestamps(),
        sa.CheckConstraint("max_delivery_fee > 0", name="ck_delivery_max_fee_positive"),
        sa.CheckConstraint(
            "beyond_tier_distance_unit > 0", name="ck_delivery_beyond_unit_positive"
        ),
        sa.CheckConstraint(
            "distance_mode IN ('auto', 'custom')", name="ck_delivery_distance_mode"
        ),
    )

    # ── shop_delivery_areas ───────────────────────────────────────────
    op.create_table(
        "shop_delivery_areas",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "shop_id",
            sa.Integer,
            sa.ForeignKey("shops.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("label", sa.String(120), nullable=True),
        sa.Column("area", Geometry("POLYGON", srid=4326), nullable=False),
        sa.Column("coordinates", postgresql.JSONB, nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "idx_delivery_areas_area",
        "shop_delivery_areas",
        ["area"],
        postgresql_using="gist",
    )
    op.create_index("idx_delivery_areas_shop", "shop_delivery_areas", ["shop_id"])

    # ── consumer_addresses ────────────────────────────────────────────
    op.create_table(
        "consumer_addresses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("title", sa.String(60), nullable=True),
        sa.Column("street_address", sa.String(255), nullable=False),
        sa.Column("city", sa.String(120), nullable=False),
        sa.Column("region", sa.String(120), nullable=True),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("landmark", sa.String(255), nullable=True),
        sa.Column("formatted_address", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_addresses_user", "consumer_addresses", ["user_id"])

    # ── merchant_items ────────────────────────────────────────────────
    op.create_table(
        "merchant_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "shop_id",
            sa.Integer,
            sa.ForeignKey("shops.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("image_url", sa.String(512), nullable=True),
        sa.Column("price_cents", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_items_shop", "merchant_items", ["shop_id"])

    # ── orders ────────────────────────────────────────────────────────
    order_status = sa.Enum(
        "pending",
        "confirmed",
        "out_for_delivery",
        "delivered",
        "cancelled",
        name="order_status",
    )
    payment_method = sa.Enum("cash", "card", "wallet", name="payment_method")

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(20), unique=True, nullable=False),
        sa.Column("shop_id", sa.Integer, sa.ForeignKey("shops.id"), nullable=False),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column(
            "consumer_address_id",
            sa.Integer,
            sa.ForeignKey("consumer_addresses.id"),
            nullable=False,
        ),
        sa.Column("status", order_status, nullable=False, server_default="pending"),
        sa.Column("subtotal_cents", sa.Integer, nullable=False),
        sa.Column("delivery_fee_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("surcharge_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_cents", sa.Integer, nullable=False),
        sa.Column("distance_meters", sa.Float, nullable=True),
        sa.Column("payment_method", payment_method, nullable=False, server_default="cash"),
        sa.Column("special_instructions", sa.Text, nullable=True),
        sa.Column("delivery_address", postgresql.JSONB, nullable=True),
        sa.Column("idempotency_key", sa.String(64), nullable=True),
        sa.Column(
            "placed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("out_for_delivery_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("confirmation_time_seconds", sa.Integer, nullable=True),
        sa.Column("preparation_time_seconds", sa.Integer, nullable=True),
        sa.Column("delivery_time_seconds", sa.Integer, nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "total_cents = subtotal_cents + delivery_fee_cents + surcharge_cents",
            name="ck_orders_total",
        ),
        sa.UniqueConstraint(
            "user_id", "idempotency_key", name="uq_orders_user_idempotency"
        ),
    )
    op.create_index("idx_orders_status", "orders", ["status"])
    op.create_index("idx_orders_shop_status", "orders", ["shop_id", "status"])
    op.create_index("idx_orders_user", "orders", ["user_id"])

    # ── order_items ───────────────────────────────────────────────────
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "order_id",
            sa.Integer,
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "merchant_item_id",
            sa.Integer,
            sa.ForeignKey("merchant_items.id"),
            nullable=False,
        ),
        sa.Column("item_name", sa.String(160), nullable=False),
        sa.Column("item_description", sa.Text, nullable=True),
        sa.Column("item_image_url", sa.String(512), nullable=True),
        sa.Column("item_price_cents", sa.Integer, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("subtotal_cents", sa.Integer, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_order_items_order", "order_items", ["order_id"])


def downgrade() -> None:
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("merchant_items")
    op.drop_table("consumer_addresses")
    op.drop_table("shop_delivery_areas")
    op.drop_table("shop_delivery_logic")
    op.drop_table("shops")
    op.execute("DROP TYPE IF EXISTS order_status")
    op.execute("DROP TYPE IF EXISTS payment_method")
