"""
Master Cartons — units per master carton, keyed by SKU.

Stored as `{"data": {"MBC101": 24, ...}, "lastUpdated": ...}`. Saves replace
the whole map.
"""

from typing import Any

import structlog

from core.config import Settings
from core.errors import ValidationError
from store import MC_DATA, DurableStore, load_document, mutate_document, retry_options
from supply_chain.models import now_iso

logger = structlog.get_logger()


class MasterCartonService:
    def __init__(self, store: DurableStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def get(self) -> dict[str, int]:
        loaded = await load_document(self.store, MC_DATA, **retry_options(self.settings))
        return loaded.data.get("data", {}) if loaded else {}

    async def replace(self, data: dict[str, Any]) -> dict[str, int]:
        cleaned: dict[str, int] = {}
        for sku, units in data.items():
            key = (sku or "").strip().upper()
            if not key:
                raise ValidationError("SKU is required")
            if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
                raise ValidationError(f"Units per master carton for {key} must be a positive integer")
            cleaned[key] = units

        def write(doc: dict[str, Any]) -> None:
            doc["data"] = cleaned
            doc["lastUpdated"] = now_iso()

        await mutate_document(
            self.store,
            MC_DATA,
            write,
            default_factory=dict,
            conflict_retries=self.settings.store_conflict_retries,
            **retry_options(self.settings),
        )
        logger.info("mc_data.saved", skus=len(cleaned))
        return cleaned
