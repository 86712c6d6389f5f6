"""
Shopify Stock Moves — mirrors transfer progress onto platform inventory.

    shipped     origin "available" -= quantity, destination "incoming" += quantity
    delivered   destination "incoming" -= delta, destination "available" += delta

Inventory item and location ids come from the cached snapshot, so a refresh
must have run first. Moves happen after the ledger commit and never undo it:
every failure ends up in the returned report instead of being raised.
"""

from collections.abc import Callable
from typing import Any

import httpx
import structlog

from core.errors import AppError
from integrations.shopify import ShopifyClient
from inventory.cache import InventoryCacheService
from supply_chain.models import Transfer

logger = structlog.get_logger()

LEDGER_URI = "app://inventory-dashboard/transfer/{transfer_id}/{leg}"


def _find_item_id(details: dict[str, list[dict]], sku: str, locations: list[str]) -> str | None:
    for location in locations:
        for row in details.get(location) or []:
            if row.get("sku") == sku and row.get("inventoryItemId"):
                return str(row["inventoryItemId"])
    return None


class ShopifyStockSync:
    def __init__(self, cache: InventoryCacheService, client_factory: Callable[[], ShopifyClient]):
        self.cache = cache
        self.client_factory = client_factory

    async def _snapshot(self) -> dict[str, Any]:
        envelope = await self.cache.load()
        return (envelope or {}).get("inventory") or {}

    async def mark_in_transit(self, transfer: Transfer) -> dict[str, Any]:
        quantities: dict[str, int] = {}
        for item in transfer.items:
            quantities[item.sku] = quantities.get(item.sku, 0) + item.quantity
        return await self._move(
            "mark_in_transit",
            transfer,
            quantities,
            steps=[
                ("available", transfer.origin, -1, "movement_updated", "origin"),
                ("incoming", transfer.destination, 1, "movement_created", "incoming"),
            ],
            lookup=lambda details: [transfer.origin],
        )

    async def log_delivery(self, transfer: Transfer, delivered: dict[str, int]) -> dict[str, Any]:
        return await self._move(
            "log_delivery",
            transfer,
            delivered,
            steps=[
                ("incoming", transfer.destination, -1, "movement_updated", "delivery-incoming"),
                ("available", transfer.destination, 1, "received", "delivery-onhand"),
            ],
            # a SKU new to the destination is looked up wherever the snapshot has it
            lookup=lambda details: [transfer.destination, *details],
        )

    async def _move(self, action, transfer, quantities, steps, lookup) -> dict[str, Any]:
        report: dict[str, Any] = {"action": action, "transferId": transfer.id, "success": False}
        try:
            snapshot = await self._snapshot()
            location_ids = snapshot.get("locationIds") or {}
            details = snapshot.get("locationDetails") or {}

            missing = [loc for _, loc, *_ in steps if loc not in location_ids]
            if not snapshot or missing:
                report["error"] = (
                    f"Location(s) not found in the inventory snapshot: {', '.join(sorted(set(missing)))}"
                    if snapshot
                    else "Inventory cache not available. Refresh inventory first."
                )
                logger.warning("stock_moves.skipped", transfer_id=transfer.id, action=action, reason=report["error"])
                return report

            warnings = []
            resolved = []
            for sku, quantity in quantities.items():
                if quantity <= 0:
                    continue
                item_id = _find_item_id(details, sku, lookup(details))
                if item_id is None:
                    warnings.append(f"SKU {sku} not found in the inventory snapshot")
                    continue
                resolved.append((sku, item_id, quantity))

            report["steps"] = []
            client = self.client_factory() if resolved else None
            for name, location, sign, reason, leg in steps if client else ():
                adjustments = [
                    {
                        "sku": sku,
                        "inventoryItemId": item_id,
                        "locationId": location_ids[location],
                        "delta": sign * quantity,
                    }
                    for sku, item_id, quantity in resolved
                ]
                results = await client.adjust_quantities(
                    name,
                    adjustments,
                    reason=reason,
                    ledger_document_uri=LEDGER_URI.format(transfer_id=transfer.id, leg=leg),
                )
                report["steps"].append({"name": name, "location": location, "results": results})
        except (AppError, httpx.HTTPError) as exc:
            logger.error("stock_moves.failed", transfer_id=transfer.id, action=action, error=str(exc))
            report["error"] = str(exc)
            return report

        report["warnings"] = warnings
        report["itemsAdjusted"] = len(resolved)
        report["success"] = all(r["success"] for step in report["steps"] for r in step["results"])
        logger.info(
            "stock_moves.applied",
            transfer_id=transfer.id,
            action=action,
            items=len(resolved),
            success=report["success"],
            warnings=len(warnings),
        )
        return report
