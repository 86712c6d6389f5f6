"""
Inventory Refresh Worker — rebuild the cached snapshot from Shopify.

Steps:
  1. Fetch active locations, `inventoried` products and per-location levels
  2. Group into the snapshot (per-SKU totals + per-location detail rows)
  3. Merge snapshot and pending production quantities into the cache envelope
     (incomingInventory, forecasting and alert state are left as they are)
  4. Run low-stock detection on the fresh snapshot

Triggered by the manual refresh endpoint and the hourly cron endpoint.
"""

import time
from typing import Any

import structlog

from alerts.dispatcher import NotificationDispatcher
from alerts.low_stock import check_low_stock
from core.config import Settings
from integrations.shopify import ShopifyClient, build_inventory_snapshot
from inventory.cache import InventoryCacheService
from store import DurableStore
from supply_chain.production_orders import ProductionOrderService

logger = structlog.get_logger()

CRON_REFRESHED_BY = "hourly auto refresh"


async def fetch_inventory_snapshot(client: ShopifyClient, settings: Settings) -> dict[str, Any]:
    locations = [loc for loc in await client.fetch_locations() if loc.get("active", True)]
    products = await client.fetch_products()
    levels = {}
    for location in locations:
        levels[str(location["id"])] = await client.fetch_detailed_inventory_levels(location["id"])
    return build_inventory_snapshot(
        locations,
        products,
        levels,
        settings.location_display_names,
        settings.location_order,
    )


async def refresh_inventory(
    store: DurableStore,
    settings: Settings,
    dispatcher: NotificationDispatcher,
    refreshed_by: str,
    client: ShopifyClient | None = None,
) -> dict[str, Any]:
    """Fetch, cache and alert. Returns a summary for the API response."""
    started = time.monotonic()
    client = client or ShopifyClient.from_settings(settings)
    cache = InventoryCacheService(store, settings)

    snapshot = await fetch_inventory_snapshot(client, settings)
    pending = await ProductionOrderService(store, settings, dispatcher).pending_by_sku()
    await cache.update(
        {
            "inventory": snapshot,
            "purchaseOrders": {
                "purchaseOrders": [{"sku": sku, "pendingQuantity": qty} for sku, qty in sorted(pending.items())]
            },
        },
        refreshed_by=refreshed_by,
    )
    alerts = await check_low_stock(cache, dispatcher, settings.low_stock_alert_location)

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "inventory.refreshed",
        refreshed_by=refreshed_by,
        skus=snapshot["totalSKUs"],
        locations=len(snapshot["locations"]),
        duration_ms=duration_ms,
    )
    return {
        "duration": f"{duration_ms}ms",
        "data": {
            "inventory": {
                "totalSKUs": snapshot["totalSKUs"],
                "totalUnits": snapshot["totalUnits"],
                "locations": len(snapshot["locations"]),
            },
            "purchaseOrders": {"totalSKUs": len(pending)},
            "lowStockAlerts": len(alerts),
        },
    }
