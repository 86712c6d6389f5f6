"""
SKU Lists — hidden SKUs and phase-out SKUs.

Both are flat lists kept in their own documents:
    {"skus": [{sku, addedAt, addedBy, addedByEmail}, ...], "lastUpdated": ...}
SKUs are compared case-insensitively and stored upper-case.
"""

from typing import Any

import structlog

from core.config import Settings
from core.errors import ValidationError
from store import HIDDEN_SKUS, PHASE_OUT_SKUS, DurableStore, load_document, mutate_document, retry_options
from supply_chain.models import Actor, now_iso

logger = structlog.get_logger()


def _empty() -> dict[str, Any]:
    return {"skus": [], "lastUpdated": now_iso()}


class SkuListService:
    def __init__(self, store: DurableStore, settings: Settings, key: str):
        self.store = store
        self.settings = settings
        self.key = key

    @classmethod
    def hidden(cls, store: DurableStore, settings: Settings) -> "SkuListService":
        return cls(store, settings, HIDDEN_SKUS)

    @classmethod
    def phase_out(cls, store: DurableStore, settings: Settings) -> "SkuListService":
        return cls(store, settings, PHASE_OUT_SKUS)

    async def list(self) -> dict[str, Any]:
        loaded = await load_document(self.store, self.key, **retry_options(self.settings))
        return loaded.data if loaded else _empty()

    async def _mutate(self, fn) -> dict[str, Any]:
        def apply(doc: dict[str, Any]) -> dict[str, Any]:
            doc.setdefault("skus", [])
            fn(doc)
            return doc

        return await mutate_document(
            self.store,
            self.key,
            apply,
            default_factory=_empty,
            conflict_retries=self.settings.store_conflict_retries,
            **retry_options(self.settings),
        )

    async def add(self, sku: str, actor: Actor) -> dict[str, Any]:
        normalized = (sku or "").strip().upper()
        if not normalized:
            raise ValidationError("SKU is required")

        def append(doc: dict[str, Any]) -> None:
            if any(entry["sku"].upper() == normalized for entry in doc["skus"]):
                return
            now = now_iso()
            doc["skus"].append(
                {"sku": normalized, "addedAt": now, "addedBy": actor.name, "addedByEmail": actor.email}
            )
            doc["lastUpdated"] = now

        doc = await self._mutate(append)
        logger.info("sku_list.added", list=self.key, sku=normalized)
        return doc

    async def remove(self, sku: str) -> dict[str, Any]:
        normalized = (sku or "").strip().upper()
        if not normalized:
            raise ValidationError("SKU is required")

        def drop(doc: dict[str, Any]) -> None:
            doc["skus"] = [entry for entry in doc["skus"] if entry["sku"].upper() != normalized]
            doc["lastUpdated"] = now_iso()

        doc = await self._mutate(drop)
        logger.info("sku_list.removed", list=self.key, sku=normalized)
        return doc

    async def is_listed(self, sku: str) -> bool:
        normalized = (sku or "").strip().upper()
        return any(entry["sku"].upper() == normalized for entry in (await self.list())["skus"])
