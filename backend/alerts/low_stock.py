"""
Low Stock Alerts — one alert per SKU per dip below its category threshold.

After each inventory refresh the alert location's rows are compared against
`retail.categories` thresholds. SKUs already alerted are remembered in the
cache envelope (`lowStockAlerts.alertedSkus`) and stay quiet until they recover
above the threshold, after which they may alert again.
"""

from typing import Any

import structlog

from alerts.dispatcher import LOW_STOCK, NotificationDispatcher
from inventory.cache import InventoryCacheService
from retail.categories import stock_threshold
from supply_chain.models import now_iso

logger = structlog.get_logger()


def evaluate_low_stock(
    rows: list[dict[str, Any]],
    alerted_skus: set[str],
) -> tuple[list[dict[str, Any]], list[str]]:
    """
    Returns (new alerts, SKUs that are currently low).

    `rows` are snapshot location rows: {sku, productTitle, variantTitle, available}.
    """
    new_alerts = []
    low_now = []
    for row in rows:
        sku = row.get("sku")
        if not sku:
            continue
        available = int(row.get("available") or 0)
        threshold = stock_threshold(sku, row.get("productTitle"))
        if available >= threshold:
            continue
        low_now.append(sku)
        if sku not in alerted_skus:
            new_alerts.append(
                {
                    "sku": sku,
                    "variantName": row.get("variantTitle") or "",
                    "quantity": available,
                    "threshold": threshold,
                }
            )
    return new_alerts, sorted(set(low_now))


async def check_low_stock(
    cache: InventoryCacheService,
    dispatcher: NotificationDispatcher,
    location: str,
) -> list[dict[str, Any]]:
    """Evaluate the cached snapshot, persist dedup state and queue one alert for new lows."""

    def evaluate(doc: dict[str, Any]) -> list[dict[str, Any]]:
        rows = ((doc.get("inventory") or {}).get("locationDetails") or {}).get(location, [])
        state = doc.get("lowStockAlerts") or {}
        new_alerts, low_now = evaluate_low_stock(rows, set(state.get("alertedSkus", [])))
        doc["lowStockAlerts"] = {"alertedSkus": low_now, "lastChecked": now_iso(), "location": location}
        return new_alerts

    new_alerts = await cache.mutate(evaluate)
    if new_alerts:
        dispatcher.notify(LOW_STOCK, {"location": location, "items": new_alerts})
    logger.info("low_stock.checked", location=location, new_alerts=len(new_alerts))
    return new_alerts
