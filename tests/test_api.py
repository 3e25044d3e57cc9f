"""
Integration tests for the REST API endpoints.

Uses an in-memory SQLite database with test models that replace PostGIS
Geometry columns with plain String columns.  Redis is replaced with an
in-memory fake through ``dependency_overrides``.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tests.conftest import (
    CONSUMER_LAT,
    CONSUMER_LNG,
    FakeRedis,
    patch_models,
    seed_marketplace,
    square_around,
)


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def marketplace(session_factory):
    async with session_factory() as session:
        with patch_models():
            return await seed_marketplace(session)


@pytest_asyncio.fixture
async def client(session_factory, marketplace):
    """AsyncClient backed by SQLite + test models + fake Redis."""
    with patch_models():
        # DB session dependency
        async def _test_db():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        from src.api.app import create_app
        from src.api.dependencies import get_config_cache, get_db
        from src.infrastructure.config_cache import DeliveryConfigCache

        redis = FakeRedis()

        app = create_app()
        app.dependency_overrides[get_db] = _test_db
        app.dependency_overrides[get_config_cache] = lambda: DeliveryConfigCache(redis)

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


def _order_body(ids: dict, **overrides) -> dict:
    body = {
        "user_id": 1,
        "shop_id": ids["shop_id"],
        "consumer_address_id": ids["address_id"],
        "items": [{"merchant_item_id": ids["milk_id"], "quantity": 3}],
    }
    body.update(overrides)
    return body


# ── Admin ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_shop_search_breaker_starts_closed(client: AsyncClient):
    resp = await client.get("/api/v1/admin/shop-search")
    assert resp.status_code == 200
    assert resp.json()["open"] is False
    assert resp.json()["failure_count"] == 0


# ── Delivery settings ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_unconfigured_shop_returns_defaults(client: AsyncClient, marketplace):
    resp = await client.get(f"/api/v1/shops/{marketplace['shop_id']}/delivery-logic")
    assert resp.status_code == 200
    data = resp.json()
    assert data["distance_mode"] == "auto"
    assert data["max_delivery_fee"] == 130
    assert len(data["distance_tiers"]) == 5


@pytest.mark.asyncio
async def test_delivery_logic_unknown_shop(client: AsyncClient):
    resp = await client.get("/api/v1/shops/9999/delivery-logic")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_save_delivery_logic(client: AsyncClient, marketplace):
    shop_id = marketplace["shop_id"]
    resp = await client.put(
        f"/api/v1/shops/{shop_id}/delivery-logic",
        json={
            "distance_mode": "custom",
            "distance_tiers": [
                {"max_distance": 500, "fee": 25},
                {"max_distance": 1500, "fee": 60},
            ],
            "least_order_value": 300,
            "minimum_order_value": 200,
        },
    )
    assert resp.status_code == 200
    assert len(resp.json()["warnings"]) == 1

    resp = await client.get(f"/api/v1/shops/{shop_id}/delivery-logic")
    assert resp.json()["distance_mode"] == "custom"
    assert resp.json()["least_order_value"] == 300


@pytest.mark.asyncio
async def test_save_rejects_unordered_tiers(client: AsyncClient, marketplace):
    resp = await client.put(
        f"/api/v1/shops/{marketplace['shop_id']}/delivery-logic",
        json={
            "distance_mode": "custom",
            "distance_tiers": [
                {"max_distance": 800, "fee": 50},
                {"max_distance": 400, "fee": 30},
            ],
        },
    )
    assert resp.status_code == 422
    assert "ascending" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_preview_small_order(client: AsyncClient):
    resp = await client.post(
        "/api/v1/delivery-logic/preview",
        json={"config": {}, "subtotal": 150, "distance_m": 350},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["eligibility"]["valid"] is True
    assert data["breakdown"] == {
        "base_fee": 30,
        "surcharge": 40,
        "free_delivery_applied": False,
        "final_fee": 70,
        "out_of_zone": False,
    }


@pytest.mark.asyncio
async def test_preview_reports_gate_and_price(client: AsyncClient):
    resp = await client.post(
        "/api/v1/delivery-logic/preview",
        json={"config": {}, "subtotal": 80, "distance_m": 1500},
    )
    data = resp.json()
    assert data["eligibility"]["valid"] is False
    assert "100" in data["eligibility"]["message"]
    assert data["breakdown"]["base_fee"] == 80
    assert data["breakdown"]["out_of_zone"] is True


@pytest.mark.asyncio
async def test_preview_rejects_broken_config(client: AsyncClient):
    resp = await client.post(
        "/api/v1/delivery-logic/preview",
        json={
            "config": {"distance_mode": "custom", "distance_tiers": []},
            "subtotal": 300,
            "distance_m": 350,
        },
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_shop_delivery_fee(client: AsyncClient, marketplace):
    resp = await client.get(
        f"/api/v1/shops/{marketplace['shop_id']}/delivery-fee",
        params={"lat": CONSUMER_LAT, "lng": CONSUMER_LNG},
    )
    assert resp.status_code == 200
    assert resp.json()["delivery_fee"] == 30
    assert 300 < resp.json()["distance_m"] < 360


@pytest.mark.asyncio
async def test_shop_delivery_fee_invalid_latitude(client: AsyncClient, marketplace):
    resp = await client.get(
        f"/api/v1/shops/{marketplace['shop_id']}/delivery-fee",
        params={"lat": 123, "lng": CONSUMER_LNG},
    )
    assert resp.status_code == 422


# ── Delivery areas & shop search ──────────────────────────────────────


@pytest.mark.asyncio
async def test_list_delivery_areas(client: AsyncClient, marketplace):
    resp = await client.get(f"/api/v1/shops/{marketplace['shop_id']}/delivery-areas")
    assert resp.status_code == 200
    assert len(resp.json()) == 1
    assert len(resp.json()[0]["coordinates"]) == 4


@pytest.mark.asyncio
async def test_add_disjoint_delivery_area(client: AsyncClient, marketplace):
    resp = await client.post(
        f"/api/v1/shops/{marketplace['shop_id']}/delivery-areas",
        json={"label": "DHA", "coordinates": square_around(31.47, 74.41)},
    )
    assert resp.status_code == 201
    assert resp.json()["label"] == "DHA"


@pytest.mark.asyncio
async def test_overlapping_delivery_area_conflicts(client: AsyncClient, marketplace):
    resp = await client.post(
        f"/api/v1/shops/{marketplace['shop_id']}/delivery-areas",
        json={"coordinates": square_around(CONSUMER_LAT, CONSUMER_LNG)},
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_delivery_area_needs_three_points(client: AsyncClient, marketplace):
    resp = await client.post(
        f"/api/v1/shops/{marketplace['shop_id']}/delivery-areas",
        json={"coordinates": square_around(31.47, 74.41)[:2]},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_nearby_shops(client: AsyncClient, marketplace):
    # No PostGIS under SQLite: served by the fallback search
    resp = await client.get(
        "/api/v1/shops/nearby", params={"lat": CONSUMER_LAT, "lng": CONSUMER_LNG}
    )
    assert resp.status_code == 200
    shops = resp.json()
    assert [s["id"] for s in shops] == [marketplace["shop_id"]]
    assert shops[0]["delivery_fee"] == 30


@pytest.mark.asyncio
async def test_nearby_shops_far_away(client: AsyncClient):
    resp = await client.get("/api/v1/shops/nearby", params={"lat": 24.86, "lng": 67.0})
    assert resp.status_code == 200
    assert resp.json() == []


# ── Orders ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_quote_small_order(client: AsyncClient, marketplace):
    # 3 x Rs 50 = Rs 150, ~330 m -> Rs 30 fee + Rs 40 surcharge
    resp = await client.post("/api/v1/orders/quote", json=_order_body(marketplace))
    assert resp.status_code == 200
    data = resp.json()
    assert data["eligible"] is True
    assert data["subtotal_cents"] == 15000
    assert data["delivery_fee_cents"] == 3000
    assert data["surcharge_cents"] == 4000
    assert data["total_cents"] == 22000


@pytest.mark.asyncio
async def test_quote_free_delivery(client: AsyncClient, marketplace):
    body = _order_body(
        marketplace, items=[{"merchant_item_id": marketplace["rice_id"], "quantity": 1}]
    )
    resp = await client.post("/api/v1/orders/quote", json=body)
    data = resp.json()
    assert data["free_delivery_applied"] is True
    assert data["total_cents"] == data["subtotal_cents"] == 90000


@pytest.mark.asyncio
async def test_quote_below_least_order_value(client: AsyncClient, marketplace):
    body = _order_body(
        marketplace, items=[{"merchant_item_id": marketplace["milk_id"], "quantity": 1}]
    )
    resp = await client.post("/api/v1/orders/quote", json=body)
    data = resp.json()
    assert data["eligible"] is False
    assert data["message"] == "Minimum item value is Rs 100"
    assert data["total_cents"] == data["subtotal_cents"] == 5000


@pytest.mark.asyncio
async def test_quote_other_users_address(client: AsyncClient, marketplace):
    resp = await client.post(
        "/api/v1/orders/quote", json=_order_body(marketplace, user_id=2)
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_quote_unknown_item(client: AsyncClient, marketplace):
    body = _order_body(marketplace, items=[{"merchant_item_id": 9999, "quantity": 1}])
    resp = await client.post("/api/v1/orders/quote", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_place_order_returns_201(client: AsyncClient, marketplace):
    resp = await client.post(
        "/api/v1/orders", json=_order_body(marketplace, payment_method="card")
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "pending"
    assert data["payment_method"] == "card"
    assert data["order_number"].startswith("ORD-")
    assert data["order_number"].endswith("-0001")
    assert data["total_cents"] == 22000
    assert data["delivery_address"]["street_address"] == "12 Main Boulevard"
    assert data["items"][0]["item_name"] == "Milk 1L"
    assert data["items"][0]["subtotal_cents"] == 15000


@pytest.mark.asyncio
async def test_order_numbers_are_sequential(client: AsyncClient, marketplace):
    first = await client.post("/api/v1/orders", json=_order_body(marketplace))
    second = await client.post("/api/v1/orders", json=_order_body(marketplace))
    assert first.json()["order_number"].endswith("-0001")
    assert second.json()["order_number"].endswith("-0002")


@pytest.mark.asyncio
async def test_place_order_below_minimum_is_blocked(client: AsyncClient, marketplace):
    body = _order_body(
        marketplace, items=[{"merchant_item_id": marketplace["milk_id"], "quantity": 1}]
    )
    resp = await client.post("/api/v1/orders", json=body)
    assert resp.status_code == 422
    assert "100" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_get_order(client: AsyncClient, marketplace):
    create_resp = await client.post("/api/v1/orders", json=_order_body(marketplace))
    order_id = create_resp.json()["id"]
    resp = await client.get(f"/api/v1/orders/{order_id}")
    assert resp.status_code == 200
    assert resp.json()["id"] == order_id
    assert len(resp.json()["items"]) == 1


@pytest.mark.asyncio
async def test_get_order_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/orders/9999")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_order_lifecycle(client: AsyncClient, marketplace):
    create_resp = await client.post("/api/v1/orders", json=_order_body(marketplace))
    order_id = create_resp.json()["id"]

    for status in ("confirmed", "out_for_delivery", "delivered"):
        resp = await client.patch(
            f"/api/v1/orders/{order_id}/status", json={"status": status}
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == status

    assert resp.json()["delivered_at"] is not None


@pytest.mark.asyncio
async def test_cancel_order(client: AsyncClient, marketplace):
    create_resp = await client.post("/api/v1/orders", json=_order_body(marketplace))
    order_id = create_resp.json()["id"]
    resp = await client.patch(
        f"/api/v1/orders/{order_id}/status",
        json={"status": "cancelled", "cancellation_reason": "Changed my mind"},
    )
    assert resp.status_code == 200
    assert resp.json()["cancellation_reason"] == "Changed my mind"


@pytest.mark.asyncio
async def test_illegal_transition_conflicts(client: AsyncClient, marketplace):
    create_resp = await client.post("/api/v1/orders", json=_order_body(marketplace))
    order_id = create_resp.json()["id"]
    resp = await client.patch(
        f"/api/v1/orders/{order_id}/status", json={"status": "delivered"}
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_idempotency_key(client: AsyncClient, marketplace):
    body = _order_body(marketplace, idempotency_key="unique-key-123")
    resp1 = await client.post("/api/v1/orders", json=body)
    resp2 = await client.post("/api/v1/orders", json=body)
    assert resp1.status_code == 201
    assert resp2.status_code == 201
    assert resp1.json()["id"] == resp2.json()["id"]
