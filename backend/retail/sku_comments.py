"""
SKU Comments — one free-text note per SKU, keyed by upper-case SKU.

    {"comments": {"MBC101": {sku, comment, updatedAt, updatedBy, updatedByEmail}}, "lastUpdated": ...}
"""

from typing import Any

import structlog

from core.config import Settings
from core.errors import ValidationError
from store import SKU_COMMENTS, DurableStore, load_document, mutate_document, retry_options
from supply_chain.models import Actor, now_iso

logger = structlog.get_logger()


class SkuCommentService:
    def __init__(self, store: DurableStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def list(self) -> dict[str, Any]:
        loaded = await load_document(self.store, SKU_COMMENTS, **retry_options(self.settings))
        return loaded.data if loaded else {"comments": {}, "lastUpdated": now_iso()}

    async def get(self, sku: str) -> dict[str, Any] | None:
        return (await self.list()).get("comments", {}).get(sku.strip().upper())

    async def _mutate(self, fn) -> dict[str, Any]:
        def apply(doc: dict[str, Any]) -> dict[str, Any]:
            doc.setdefault("comments", {})
            fn(doc)
            doc["lastUpdated"] = now_iso()
            return doc

        return await mutate_document(
            self.store,
            SKU_COMMENTS,
            apply,
            default_factory=lambda: {"comments": {}},
            conflict_retries=self.settings.store_conflict_retries,
            **retry_options(self.settings),
        )

    async def set(self, sku: str, comment: str, actor: Actor) -> dict[str, Any]:
        """Add or replace a comment. A blank comment removes it."""
        normalized = (sku or "").strip().upper()
        if not normalized:
            raise ValidationError("SKU is required")

        def write(doc: dict[str, Any]) -> None:
            if not comment.strip():
                doc["comments"].pop(normalized, None)
                return
            doc["comments"][normalized] = {
                "sku": normalized,
                "comment": comment.strip(),
                "updatedAt": now_iso(),
                "updatedBy": actor.name,
                "updatedByEmail": actor.email,
            }

        doc = await self._mutate(write)
        logger.info("sku_comment.saved", sku=normalized, cleared=not comment.strip())
        return doc

    async def delete(self, sku: str) -> dict[str, Any]:
        normalized = (sku or "").strip().upper()
        if not normalized:
            raise ValidationError("SKU is required")
        return await self._mutate(lambda doc: doc["comments"].pop(normalized, None))
