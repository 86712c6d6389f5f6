"""
Tests — category thresholds and low-stock dedup.
"""

import pytest

from alerts.dispatcher import LOW_STOCK
from alerts.low_stock import check_low_stock, evaluate_low_stock
from retail.categories import DEFAULT_LOW_STOCK_THRESHOLD, find_category, stock_threshold


class TestCategories:
    @pytest.mark.parametrize(
        "sku,expected",
        [
            ("MBC101", "iPhone"),
            ("MBS200", "Samsung"),
            ("MBP7", "Pixel"),
            ("LSR-WLT-9", "Wallets"),
            ("MBQI-2", "Car Charger"),
            ("RPTM15", "RimCase"),
            ("ACC-CABLE", "Accessories"),
        ],
    )
    def test_prefix_matching(self, sku, expected):
        assert find_category(sku).name == expected

    def test_multicharger_matches_by_title_only(self):
        assert find_category("XYZ1", "3-in-1 MultiCharger").name == "MultiCharger"
        assert find_category("XYZ1", "Plain cable") is None

    def test_thresholds(self):
        assert stock_threshold("MBWLT-1") == 25
        assert stock_threshold("MBT-S") == 5
        assert stock_threshold("UNKNOWN") == DEFAULT_LOW_STOCK_THRESHOLD


class TestEvaluateLowStock:
    def test_only_new_lows_alert(self):
        rows = [
            {"sku": "MBC101", "variantTitle": "Black", "available": 3},
            {"sku": "MBS200", "available": 14},
            {"sku": "MBP7", "available": 10},
            {"sku": None, "available": 0},
        ]

        alerts, low_now = evaluate_low_stock(rows, alerted_skus={"MBS200"})

        assert alerts == [{"sku": "MBC101", "variantName": "Black", "quantity": 3, "threshold": 20}]
        assert low_now == ["MBC101", "MBS200"]


@pytest.mark.asyncio
class TestCheckLowStock:
    async def test_sku_realerts_after_recovering(self, seed_stock, cache, dispatcher, notifier):
        await seed_stock({"LA Office": {"MBC101": 5}})
        assert len(await check_low_stock(cache, dispatcher, "LA Office")) == 1
        assert await check_low_stock(cache, dispatcher, "LA Office") == []

        await seed_stock({"LA Office": {"MBC101": 50}})
        assert await check_low_stock(cache, dispatcher, "LA Office") == []
        assert (await cache.load())["lowStockAlerts"]["alertedSkus"] == []

        await seed_stock({"LA Office": {"MBC101": 2}})
        assert len(await check_low_stock(cache, dispatcher, "LA Office")) == 1

        await dispatcher.drain()
        assert notifier.kinds() == [LOW_STOCK, LOW_STOCK]
