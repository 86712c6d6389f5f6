"""
Inventory Cache — the single envelope document behind the dashboard.

    {
      "inventory":        snapshot from the commerce platform,
      "forecasting":      sales velocity (kept as-is, refreshed elsewhere),
      "purchaseOrders":   pending production quantities per SKU,
      "incomingInventory": destination -> SKU -> inbound projection,
      "lowStockAlerts":   alert dedup state,
      "lastUpdated", "refreshedBy"
    }

The backends only save whole documents, so every partial update goes through
a read-merge-write and never drops sibling fields.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

import structlog

from core.config import Settings
from store import INVENTORY_CACHE, DurableStore, load_document, mutate_document, retry_options
from supply_chain.models import now_iso

logger = structlog.get_logger()

T = TypeVar("T")

INCOMING_FIELD = "incomingInventory"


class InventoryCacheService:
    def __init__(self, store: DurableStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def load(self) -> dict[str, Any] | None:
        """The whole envelope, or None when nothing has been cached yet."""
        loaded = await load_document(self.store, INVENTORY_CACHE, **retry_options(self.settings))
        return loaded.data if loaded else None

    async def mutate(self, fn: Callable[[dict[str, Any]], T]) -> T:
        return await mutate_document(
            self.store,
            INVENTORY_CACHE,
            fn,
            conflict_retries=self.settings.store_conflict_retries,
            **retry_options(self.settings),
        )

    async def update(self, fields: dict[str, Any], refreshed_by: str | None = None) -> dict[str, Any]:
        """Merge top-level `fields` into the envelope; untouched fields survive."""

        def merge(doc: dict[str, Any]) -> dict[str, Any]:
            doc.update(fields)
            doc["lastUpdated"] = now_iso()
            doc["refreshedBy"] = refreshed_by or "unknown"
            return doc

        envelope = await self.mutate(merge)
        logger.info("cache.updated", fields=sorted(fields), refreshed_by=refreshed_by)
        return envelope

    # ── Incoming projection ────────────────────────────────────────────

    async def get_incoming(self) -> dict[str, Any]:
        envelope = await self.load()
        if not envelope:
            return {}
        return envelope.get(INCOMING_FIELD) or {}

    async def mutate_incoming(self, fn: Callable[[dict[str, Any]], T]) -> T:
        """Apply `fn` to the projection inside a read-merge-write of the envelope."""

        def apply(doc: dict[str, Any]) -> T:
            projection = doc.get(INCOMING_FIELD)
            if not isinstance(projection, dict):
                projection = {}
                doc[INCOMING_FIELD] = projection
            return fn(projection)

        return await self.mutate(apply)

    async def set_incoming(self, projection: dict[str, Any]) -> None:
        def replace(doc: dict[str, Any]) -> None:
            doc[INCOMING_FIELD] = projection

        await self.mutate(replace)

    # ── Snapshot reads ─────────────────────────────────────────────────

    async def location_stock(self, location: str) -> dict[str, int] | None:
        """
        Available quantity per SKU at `location` from the cached snapshot.

        None when the snapshot does not know the location at all (nothing can
        be checked); SKUs missing from a known location are simply absent.
        """
        envelope = await self.load()
        details = ((envelope or {}).get("inventory") or {}).get("locationDetails") or {}
        if location not in details:
            return None
        return {row["sku"]: int(row.get("available") or 0) for row in details[location] if row.get("sku")}

    async def cache_age_minutes(self) -> int | None:
        envelope = await self.load()
        if not envelope or not envelope.get("lastUpdated"):
            return None
        last = datetime.fromisoformat(envelope["lastUpdated"].replace("Z", "+00:00"))
        return int((datetime.now(timezone.utc) - last).total_seconds() // 60)
