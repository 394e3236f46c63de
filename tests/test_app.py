from __future__ import annotations

import httpx
import pytest
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from shop_api.core.sequence import AllocatorState
from tests.helpers import AUTH


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.asyncio
async def test_startup_creates_counters_and_indexes(app, fake_db) -> None:
    counters = {doc["_id"]: doc["sequence_value"] for doc in fake_db["counters"].docs}

    assert counters == {"productId": 1, "itemId": 1}
    assert fake_db["products"].unique_fields == ["id"]
    assert fake_db["items"].unique_fields == ["id"]
    assert app.state.sequences.state is AllocatorState.READY


@pytest.mark.asyncio
async def test_development_startup_seeds_samples_and_continues_sequence(build_app, fake_db) -> None:
    app = build_app(seed_samples=True)
    async with app.router.lifespan_context(app):
        async with _client(app) as client:
            products = (await client.get("/api/products")).json()
            items = (await client.get("/api/items")).json()
            new_product = await client.post(
                "/api/products", json={"name": "Webcam", "price": 59.0, "category": "Electronics"}, headers=AUTH
            )
            new_item = await client.post(
                "/api/items", json={"name": "Stapler", "price": 7.5, "category": "Stationery"}, headers=AUTH
            )

    assert products["total"] == 5
    assert [p["id"] for p in products["products"]] == [1, 2, 3, 4, 5]
    assert items["count"] == 4
    assert new_product.json()["product"]["id"] == 6
    assert new_item.json()["item"]["id"] == 5


@pytest.mark.asyncio
async def test_restart_keeps_existing_counters_and_data(build_app, fake_db) -> None:
    first = build_app(seed_samples=True)
    async with first.router.lifespan_context(first):
        async with _client(first) as client:
            await client.post("/api/items", json={"name": "Stapler", "price": 7.5, "category": "Office"}, headers=AUTH)

    second = build_app(seed_samples=True)
    async with second.router.lifespan_context(second):
        async with _client(second) as client:
            items = (await client.get("/api/items")).json()
            created = await client.post(
                "/api/items", json={"name": "Tape", "price": 2.0, "category": "Office"}, headers=AUTH
            )

    assert items["count"] == 5
    assert created.json()["item"]["id"] == 6


@pytest.mark.asyncio
async def test_requests_before_startup_get_503(build_app) -> None:
    app = build_app()
    async with _client(app) as client:
        listing = await client.get("/api/items")
        create = await client.post("/api/products", json={"name": "A", "price": 1, "category": "B"}, headers=AUTH)
        health = await client.get("/health")

    assert listing.status_code == 503
    assert listing.json()["error"] == "Service Unavailable"
    assert create.status_code == 503
    assert health.status_code == 503
    assert health.json()["sequenceAllocator"] == "uninitialized"


@pytest.mark.asyncio
async def test_startup_fails_when_database_is_unreachable(build_app, mongo_client) -> None:
    mongo_client.admin.fail_with = ServerSelectionTimeoutError("no servers")
    app = build_app()

    with pytest.raises(ServerSelectionTimeoutError):
        async with app.router.lifespan_context(app):
            pass

    assert app.state.sequences.state is AllocatorState.FAILED
    assert mongo_client.closed is True


@pytest.mark.asyncio
async def test_startup_closes_client_when_counter_bootstrap_fails(build_app, mongo_client, fake_db) -> None:
    fake_db["counters"].fail_on["update_one"] = ServerSelectionTimeoutError("primary lost")
    app = build_app()

    with pytest.raises(ServerSelectionTimeoutError):
        async with app.router.lifespan_context(app):
            pass

    assert app.state.sequences.state is AllocatorState.FAILED
    assert app.state.store is None
    assert mongo_client.closed is True


@pytest.mark.asyncio
async def test_root_page_and_version(client) -> None:
    root = await client.get("/")
    assert root.status_code == 200
    assert "text/html" in root.headers["content-type"]
    assert "/api/products" in root.text

    version = await client.get("/version")
    assert version.json() == {"version": "1.1", "updatedAt": "2026-01-18"}


@pytest.mark.asyncio
async def test_health_reports_counters(client) -> None:
    await client.post("/api/products", json={"name": "A", "price": 1, "category": "B"}, headers=AUTH)

    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["sequenceAllocator"] == "ready"
    assert body["counters"] == {"productId": 2, "itemId": 1}


@pytest.mark.asyncio
async def test_ping_mongodb(client, mongo_client) -> None:
    assert (await client.get("/ping-mongodb")).status_code == 200

    mongo_client.admin.fail_with = ConnectionFailure("gone")
    failed = await client.get("/ping-mongodb")

    assert failed.status_code == 503
    assert failed.json()["message"] == "MongoDB connection failed."


@pytest.mark.asyncio
async def test_unknown_endpoint_lists_available_routes(client) -> None:
    response = await client.get("/api/widgets")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "API endpoint not found"
    assert "GET /api/products" in body["availableEndpoints"]


@pytest.mark.asyncio
async def test_responses_carry_request_id(client) -> None:
    echoed = await client.get("/version", headers={"X-Request-ID": "abc123"})
    generated = await client.get("/version")

    assert echoed.headers["X-Request-ID"] == "abc123"
    assert len(generated.headers["X-Request-ID"]) == 32


@pytest.mark.asyncio
async def test_metrics_count_regular_allocations(client) -> None:
    await client.post("/api/items", json={"name": "Pen", "price": 1, "category": "Office"}, headers=AUTH)

    text = (await client.get("/metrics")).text

    assert 'sequence_allocations_total{sequence_key="itemId"} 1.0' in text


@pytest.mark.asyncio
async def test_health_reports_corrupt_counter_as_degraded(client, fake_db) -> None:
    counter = next(doc for doc in fake_db["counters"].docs if doc["_id"] == "productId")
    counter["sequence_value"] = 6.5

    response = await client.get("/health")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "degraded"
    assert body["database"] == "ok"
    assert body["corruptCounters"] == ["productId"]
    assert body["counters"] == {"itemId": 1}
