"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates (around Gulberg, Lahore):
  - 5 sample shops, each with one square delivery area
  - delivery settings for 3 of them (the others price with defaults)
  - 4 consumer addresses
  - a handful of merchant items per shop
"""

import asyncio

from sqlalchemy import text

from src.config import settings
from src.domain.coverage import shop_h3_cell
from src.domain.entities import Coordinate, DeliveryConfiguration, DistanceTier
from src.domain.enums import DistanceMode
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import (
    ConsumerAddressModel,
    MerchantItemModel,
    ShopModel,
)
from src.infrastructure.repositories import (
    DeliveryAreaRepository,
    DeliveryLogicRepository,
)

# Liberty Market, Lahore (approx)
CENTER_LAT, CENTER_LNG = 31.5102, 74.3441

# ~1.1 km half-width in degrees at this latitude
AREA_HALF_WIDTH = 0.01


SHOPS = [
    {"name": "Gulberg Grocers", "shop_type": "grocery", "lat": 31.5102, "lng": 74.3441},
    {"name": "Main Market Pharmacy", "shop_type": "pharmacy", "lat": 31.5170, "lng": 74.3490},
    {"name": "Hussain Chowk Bakery", "shop_type": "bakery", "lat": 31.5050, "lng": 74.3380},
    {"name": "MM Alam Fresh", "shop_type": "grocery", "lat": 31.5135, "lng": 74.3520},
    {"name": "Kalma Chowk Mart", "shop_type": "convenience", "lat": 31.5040, "lng": 74.3310},
]

DELIVERY_SETTINGS = {
    # Shop index -> settings; shops not listed use the platform defaults
    0: DeliveryConfiguration(),
    1: DeliveryConfiguration(
        minimum_order_value=300,
        small_order_surcharge=50,
        least_order_value=150,
        free_delivery_threshold=1500,
        free_delivery_radius=800,
    ),
    3: DeliveryConfiguration(
        distance_mode=DistanceMode.CUSTOM,
        distance_tiers=[
            DistanceTier(500, 25),
            DistanceTier(1000, 45),
            DistanceTier(2000, 80),
        ],
        max_delivery_fee=120,
        beyond_tier_fee_per_unit=15,
        beyond_tier_distance_unit=500,
    ),
}

ADDRESSES = [
    {"user_id": 1, "title": "Home", "street": "12 Main Boulevard", "lat": 31.5120, "lng": 74.3460},
    {"user_id": 1, "title": "Office", "street": "45 MM Alam Road", "lat": 31.5150, "lng": 74.3505},
    {"user_id": 2, "title": "Home", "street": "7 Canal View", "lat": 31.5060, "lng": 74.3400},
    {"user_id": 3, "title": "Home", "street": "88 Zahoor Elahi Road", "lat": 31.5185, "lng": 74.3430},
]

ITEMS = [
    ("Milk 1L", 22000),
    ("Bread loaf", 15000),
    ("Eggs (dozen)", 36000),
    ("Basmati rice 5kg", 185000),
    ("Mineral water 1.5L", 9000),
]


def _square(lat: float, lng: float) -> list[Coordinate]:
    d = AREA_HALF_WIDTH
    return [
        Coordinate(lat - d, lng - d),
        Coordinate(lat - d, lng + d),
        Coordinate(lat + d, lng + d),
        Coordinate(lat + d, lng - d),
    ]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM shops"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Shops ─────────────────────────────────────────────────────
        shop_models = []
        for s in SHOPS:
            m = ShopModel(
                name=s["name"],
                address=f"{s['name']}, Gulberg, Lahore",
                shop_type=s["shop_type"],
                location=f"SRID=4326;POINT({s['lng']} {s['lat']})",
                latitude=s["lat"],
                longitude=s["lng"],
                h3_cell=shop_h3_cell(s["lat"], s["lng"], settings.h3_resolution),
                is_open=True,
            )
            session.add(m)
            shop_models.append(m)
        await session.flush()
        print(f"  Created {len(shop_models)} shops")

        # ── Delivery areas & settings ─────────────────────────────────
        areas = DeliveryAreaRepository(session)
        for shop in shop_models:
            await areas.create(shop.id, "Main area", _square(shop.latitude, shop.longitude))
        print(f"  Created {len(shop_models)} delivery areas")

        logic = DeliveryLogicRepository(session)
        for index, config in DELIVERY_SETTINGS.items():
            await logic.save(shop_models[index].id, config)
        print(f"  Saved delivery settings for {len(DELIVERY_SETTINGS)} shops")

        # ── Consumer addresses ────────────────────────────────────────
        for a in ADDRESSES:
            session.add(
                ConsumerAddressModel(
                    user_id=a["user_id"],
                    title=a["title"],
                    street_address=a["street"],
                    city="Lahore",
                    region="Punjab",
                    latitude=a["lat"],
                    longitude=a["lng"],
                    formatted_address=f"{a['street']}, Lahore",
                )
            )
        print(f"  Created {len(ADDRESSES)} consumer addresses")

        # ── Merchant items ────────────────────────────────────────────
        for shop in shop_models:
            for name, price_cents in ITEMS:
                session.add(
                    MerchantItemModel(
                        shop_id=shop.id, name=name, price_cents=price_cents
                    )
                )
        print(f"  Created {len(ITEMS) * len(shop_models)} merchant items")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
