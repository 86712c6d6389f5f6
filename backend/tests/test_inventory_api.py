"""
API Tests — cached inventory, manual refresh, physical-count updates and the cron trigger.
"""

import pytest

from api.deps import get_shopify_client
from api.main import app
from core.config import get_settings


class FakeShopifyClient:
    def __init__(self):
        self.updates = []

    async def fetch_locations(self):
        return [{"id": 1, "name": "New LA Office", "active": True}]

    async def fetch_products(self):
        return [
            {
                "title": "iPhone Case",
                "tags": "inventoried",
                "variants": [{"sku": "MBC101", "inventory_item_id": 11, "title": "Black"}],
            }
        ]

    async def fetch_detailed_inventory_levels(self, location_id):
        return [{"inventoryItemId": "11", "available": 40, "onHand": 40, "committed": 0, "incoming": 0}]

    async def set_on_hand_quantities(self, updates, reason="correction"):
        self.updates.append((updates, reason))
        return [
            {"success": u["sku"] != "BAD", "sku": u["sku"], **({"error": "unknown item"} if u["sku"] == "BAD" else {})}
            for u in updates
        ]


@pytest.fixture
def shopify(client):
    fake = FakeShopifyClient()
    app.dependency_overrides[get_shopify_client] = lambda: fake
    return fake


@pytest.mark.asyncio
class TestInventoryAPI:
    async def test_no_cache_yet_is_404(self, client):
        response = await client.get("/api/v1/inventory")
        assert response.status_code == 404
        assert "refresh" in response.json()["error"]

    async def test_refresh_then_read(self, client, shopify):
        refreshed = await client.post("/api/v1/inventory/refresh")
        assert refreshed.status_code == 200
        assert refreshed.json()["success"] is True
        assert refreshed.json()["data"]["inventory"]["totalSKUs"] == 1

        cached = await client.get("/api/v1/inventory")
        body = cached.json()
        assert body["inventory"]["inventory"][0]["sku"] == "MBC101"
        assert body["refreshedBy"] == "planner@example.com"
        assert body["cacheAgeMinutes"] == 0

    async def test_physical_count_partial_failure(self, client, shopify):
        response = await client.post(
            "/api/v1/inventory/update",
            json={
                "updates": [
                    {"sku": "MBC101", "inventoryItemId": "11", "locationId": "1", "quantity": 12},
                    {"sku": "BAD", "inventoryItemId": "99", "locationId": "1", "quantity": 1},
                ]
            },
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is False
        assert body["summary"] == {"total": 2, "success": 1, "failed": 1}
        assert body["updatedBy"] == "planner@example.com"
        sent, reason = shopify.updates[0]
        assert reason == "correction"
        assert sent[0] == {"sku": "MBC101", "inventoryItemId": "11", "locationId": "1", "quantity": 12}

    async def test_physical_count_requires_updates(self, client, shopify):
        response = await client.post("/api/v1/inventory/update", json={"updates": []})
        assert response.status_code == 400

    async def test_negative_count_rejected(self, client, shopify):
        response = await client.post(
            "/api/v1/inventory/update",
            json={"updates": [{"sku": "A", "inventoryItemId": "1", "locationId": "1", "quantity": -5}]},
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestCronRefresh:
    async def test_unconfigured_secret_is_500(self, client, shopify):
        response = await client.get("/api/v1/cron/refresh", headers={"Authorization": "Bearer anything"})
        assert response.status_code == 500
        assert response.json() == {"error": "CRON_SECRET not configured"}

    async def test_wrong_secret_is_401(self, client, shopify, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        get_settings.cache_clear()

        response = await client.get("/api/v1/cron/refresh", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

        missing = await client.get("/api/v1/cron/refresh")
        assert missing.status_code == 401

    async def test_valid_secret_refreshes(self, client, shopify, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        get_settings.cache_clear()

        response = await client.get("/api/v1/cron/refresh", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 200
        cached = await client.get("/api/v1/inventory")
        assert cached.json()["refreshedBy"] == "hourly auto refresh"
