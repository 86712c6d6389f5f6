"""
Tests — warehouse count drafts, submission logs and master-carton data.
"""

import pytest

from core.errors import NotFoundError, ValidationError
from retail.master_cartons import MasterCartonService
from retail.warehouse import MAX_SUBMISSION_LOGS, WarehouseCountService, slugify
from supply_chain.models import Actor


@pytest.fixture
def counts(store, settings):
    return WarehouseCountService(store, settings)


@pytest.fixture
def cartons(store, settings):
    return MasterCartonService(store, settings)


def test_slugify():
    assert slugify("LA Office") == "la-office"
    assert slugify("  Jane O'Neil ") == "jane-o-neil"
    assert slugify("") == "unknown"


@pytest.mark.asyncio
class TestCountDrafts:
    async def test_drafts_are_per_user_and_location(self, counts, store, actor):
        other = Actor(name="Second Counter", email="second@example.com")
        await counts.save_draft("LA Office", {"MBC101": 12, "MBS200": None}, actor)
        await counts.save_draft("LA Office", {"MBC101": 9}, other)
        await counts.save_draft("ShipBob", {"ACC1": 1}, actor)

        mine = await counts.get_draft("LA Office", actor.name)
        assert mine["counts"] == {"MBC101": 12, "MBS200": None}
        assert mine["savedBy"] == actor.name
        assert (await counts.get_draft("LA Office", other.name))["counts"] == {"MBC101": 9}
        assert (await counts.get_draft("ShipBob", actor.name))["counts"] == {"ACC1": 1}
        assert await counts.get_draft("Nowhere", actor.name) is None

        stored = (await store.load("warehouse-drafts-la-office")).data
        assert sorted(stored["drafts"]) == ["second-counter", "test-planner"]

    async def test_save_replaces_own_draft(self, counts, actor):
        await counts.save_draft("LA Office", {"MBC101": 12}, actor)
        saved = await counts.save_draft("LA Office", {"MBC101": 14, "MBS200": None}, actor)

        assert saved["skuCount"] == 1
        assert (await counts.get_draft("LA Office", actor.name))["counts"] == {"MBC101": 14, "MBS200": None}

    async def test_list_counts_only_entered_skus(self, counts, actor):
        await counts.save_draft("LA Office", {"MBC101": 0, "MBS200": None, "ACC1": 3}, actor)

        [summary] = await counts.list_drafts("LA Office")

        assert summary["draftId"] == "test-planner"
        assert summary["savedBy"] == actor.name
        assert summary["skuCount"] == 2

    async def test_load_by_id(self, counts, actor):
        await counts.save_draft("LA Office", {"MBC101": 5}, actor)

        assert (await counts.get_draft_by_id("LA Office", "test-planner"))["counts"] == {"MBC101": 5}
        with pytest.raises(NotFoundError):
            await counts.get_draft_by_id("LA Office", "someone-else")

    async def test_empty_or_negative_counts_rejected(self, counts, actor):
        with pytest.raises(ValidationError, match="No counts provided"):
            await counts.save_draft("LA Office", {}, actor)
        with pytest.raises(ValidationError):
            await counts.save_draft("LA Office", {"MBC101": -1}, actor)
        assert await counts.list_drafts("LA Office") == []

    async def test_delete_own_and_all(self, counts, actor):
        other = Actor(name="Second Counter", email="second@example.com")
        await counts.save_draft("LA Office", {"MBC101": 1}, actor)
        await counts.save_draft("LA Office", {"MBC101": 2}, other)

        assert await counts.delete_draft("LA Office", actor) is True
        assert await counts.delete_draft("LA Office", actor) is False
        assert [d["draftId"] for d in await counts.list_drafts("LA Office")] == ["second-counter"]

        assert await counts.delete_all_drafts("LA Office") == 1
        assert await counts.list_drafts("LA Office") == []


@pytest.mark.asyncio
class TestSubmissionLogs:
    async def test_newest_first_with_location(self, counts):
        await counts.append_log("LA Office", {"submittedBy": "A", "summary": {"totalSKUs": 3}})
        total = await counts.append_log("LA Office", {"submittedBy": "B", "summary": {"totalSKUs": 1}})

        logs = await counts.list_logs("LA Office")
        assert total == 2
        assert [entry["submittedBy"] for entry in logs] == ["B", "A"]
        assert logs[0]["location"] == "LA Office"
        assert logs[0]["timestamp"]
        assert await counts.list_logs("ShipBob") == []

    async def test_history_is_capped(self, counts, store):
        old = [{"submittedBy": f"user-{i}"} for i in range(MAX_SUBMISSION_LOGS)]
        await store.save("warehouse-logs-la-office", {"logs": old})

        total = await counts.append_log("LA Office", {"submittedBy": "newest"})

        logs = await counts.list_logs("LA Office")
        assert total == MAX_SUBMISSION_LOGS
        assert logs[0]["submittedBy"] == "newest"
        assert logs[-1]["submittedBy"] == f"user-{MAX_SUBMISSION_LOGS - 2}"

    async def test_empty_entry_rejected(self, counts):
        with pytest.raises(ValidationError, match="No log entry provided"):
            await counts.append_log("LA Office", {})


@pytest.mark.asyncio
class TestMasterCartons:
    async def test_empty_until_saved(self, cartons):
        assert await cartons.get() == {}

    async def test_replace_normalizes_skus(self, cartons):
        await cartons.replace({"MBC101": 24, "old": 10})
        saved = await cartons.replace({" mbc101 ": 48})

        assert saved == {"MBC101": 48}
        assert await cartons.get() == {"MBC101": 48}

    @pytest.mark.parametrize("units", [0, -4, 2.5, "24", True])
    async def test_invalid_units_rejected(self, cartons, units):
        await cartons.replace({"MBC101": 24})
        with pytest.raises(ValidationError):
            await cartons.replace({"MBC101": units})
        assert await cartons.get() == {"MBC101": 24}


@pytest.mark.asyncio
class TestWarehouseAPI:
    async def test_draft_round_trip(self, client, mock_user):
        saved = await client.post(
            "/api/v1/warehouse/drafts",
            json={"counts": {"MBC101": 7, "MBS200": None}, "location": "ShipBob"},
        )
        assert saved.status_code == 200
        assert saved.json()["success"] is True
        assert saved.json()["savedBy"] == mock_user["name"]
        assert saved.json()["skuCount"] == 1

        mine = await client.get("/api/v1/warehouse/drafts", params={"location": "ShipBob"})
        assert mine.json()["draft"]["counts"] == {"MBC101": 7, "MBS200": None}

        listing = await client.get("/api/v1/warehouse/drafts", params={"location": "ShipBob", "list": "true"})
        assert listing.json()["currentUser"] == mock_user["name"]
        [summary] = listing.json()["drafts"]

        one = await client.get(
            "/api/v1/warehouse/drafts", params={"location": "ShipBob", "draftId": summary["draftId"]}
        )
        assert one.json()["draft"]["counts"]["MBC101"] == 7

        deleted = await client.delete("/api/v1/warehouse/drafts", params={"location": "ShipBob"})
        assert deleted.json() == {"success": True, "removed": 1}
        assert (await client.get("/api/v1/warehouse/drafts", params={"location": "ShipBob"})).json() == {
            "draft": None
        }

    async def test_missing_draft_is_404(self, client):
        response = await client.get("/api/v1/warehouse/drafts", params={"draftId": "nobody"})
        assert response.status_code == 404
        assert response.json() == {"error": "Draft not found"}

    async def test_empty_counts_is_400(self, client):
        response = await client.post("/api/v1/warehouse/drafts", json={"counts": {}})
        assert response.status_code == 400
        assert response.json() == {"error": "No counts provided"}

    async def test_clear_all_drafts(self, client):
        await client.post("/api/v1/warehouse/drafts", json={"counts": {"MBC101": 1}})

        response = await client.delete("/api/v1/warehouse/drafts/all")

        assert response.json() == {"success": True, "removed": 1}

    async def test_submission_logs(self, client):
        log = {
            "submittedBy": "Test Planner",
            "summary": {"totalSKUs": 2, "discrepancies": 1, "totalDifference": -3},
            "updates": [{"sku": "MBC101", "previousOnHand": 10, "newQuantity": 7}],
            "result": {"total": 1, "success": 1, "failed": 0},
        }

        posted = await client.post("/api/v1/warehouse/logs", json={"log": log})
        assert posted.json() == {"success": True, "totalLogs": 1}

        logs = (await client.get("/api/v1/warehouse/logs")).json()["logs"]
        assert logs[0]["location"] == "LA Office"
        assert logs[0]["updates"] == log["updates"]

    async def test_empty_log_is_400(self, client):
        response = await client.post("/api/v1/warehouse/logs", json={"log": {}})
        assert response.status_code == 400


@pytest.mark.asyncio
class TestMasterCartonAPI:
    async def test_get_and_replace(self, client):
        assert (await client.get("/api/v1/mc-data")).json() == {}

        saved = await client.post("/api/v1/mc-data", json={"MBC101": 24, "mbs200": 12})

        assert saved.json() == {"success": True, "data": {"MBC101": 24, "MBS200": 12}}
        assert (await client.get("/api/v1/mc-data")).json() == {"MBC101": 24, "MBS200": 12}

    async def test_bad_units_is_400(self, client):
        response = await client.post("/api/v1/mc-data", json={"MBC101": 0})
        assert response.status_code == 400
