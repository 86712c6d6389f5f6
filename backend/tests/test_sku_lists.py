"""
Tests — hidden / phase-out SKU lists and SKU comments.
"""

import pytest

from core.errors import ValidationError
from retail.sku_comments import SkuCommentService
from retail.sku_lists import SkuListService


@pytest.fixture
def hidden(store, settings):
    return SkuListService.hidden(store, settings)


@pytest.fixture
def comments(store, settings):
    return SkuCommentService(store, settings)


@pytest.mark.asyncio
class TestSkuLists:
    async def test_add_is_case_insensitive_and_deduplicated(self, hidden, actor):
        await hidden.add("mbc101", actor)
        doc = await hidden.add(" MBC101 ", actor)

        assert [entry["sku"] for entry in doc["skus"]] == ["MBC101"]
        assert doc["skus"][0]["addedByEmail"] == actor.email
        assert await hidden.is_listed("Mbc101")

    async def test_remove(self, hidden, actor):
        await hidden.add("MBC101", actor)
        await hidden.add("MBS200", actor)

        doc = await hidden.remove("mbc101")

        assert [entry["sku"] for entry in doc["skus"]] == ["MBS200"]
        assert not await hidden.is_listed("MBC101")

    async def test_lists_are_independent(self, store, settings, hidden, actor):
        phase_out = SkuListService.phase_out(store, settings)
        await hidden.add("MBC101", actor)

        assert (await phase_out.list())["skus"] == []

    async def test_blank_sku_rejected(self, hidden, actor):
        with pytest.raises(ValidationError):
            await hidden.add("   ", actor)


@pytest.mark.asyncio
class TestSkuComments:
    async def test_set_get_and_clear(self, comments, actor):
        await comments.set("mbc101", "  discontinued colour  ", actor)

        entry = await comments.get("MBC101")
        assert entry["comment"] == "discontinued colour"
        assert entry["updatedBy"] == actor.name

        await comments.set("MBC101", "", actor)
        assert await comments.get("MBC101") is None

    async def test_delete(self, comments, actor):
        await comments.set("MBC101", "note", actor)
        doc = await comments.delete("MBC101")
        assert doc["comments"] == {}


@pytest.mark.asyncio
class TestSkuListAPI:
    async def test_hidden_skus_round_trip(self, client):
        added = await client.post("/api/v1/hidden-skus", json={"sku": "mbc101"})
        assert added.status_code == 200
        assert added.json()["skus"][0]["sku"] == "MBC101"

        listing = await client.get("/api/v1/hidden-skus")
        assert [e["sku"] for e in listing.json()["skus"]] == ["MBC101"]

        removed = await client.delete("/api/v1/hidden-skus", params={"sku": "MBC101"})
        assert removed.json()["skus"] == []

    async def test_phase_out_requires_sku(self, client):
        response = await client.post("/api/v1/phase-out", json={"sku": ""})
        assert response.status_code == 400
        assert response.json() == {"error": "SKU is required"}

    async def test_comments(self, client):
        await client.post("/api/v1/sku-comments", json={"sku": "MBC101", "comment": "reorder in May"})

        listing = await client.get("/api/v1/sku-comments")
        assert listing.json()["comments"]["MBC101"]["comment"] == "reorder in May"

        deleted = await client.delete("/api/v1/sku-comments", params={"sku": "MBC101"})
        assert deleted.json()["comments"] == {}
