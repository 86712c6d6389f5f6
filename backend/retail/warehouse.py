"""
Warehouse Counts — per-person count drafts and submission logs, one document
per location for each.

    warehouse-drafts-<location>  {"drafts": {"<user-slug>": {counts, savedAt, savedBy}}}
    warehouse-logs-<location>    {"logs": [newest first], "lastUpdated": ...}

A draft holds partially entered physical counts; `null` means "not counted
yet". A log records one submitted count after it was pushed to Shopify.
"""

import re
from typing import Any

import structlog

from core.config import Settings
from core.errors import NotFoundError, ValidationError
from store import WAREHOUSE_DRAFTS, WAREHOUSE_LOGS, DurableStore, load_document, mutate_document, retry_options
from supply_chain.models import Actor, now_iso

logger = structlog.get_logger()

DEFAULT_LOCATION = "LA Office"
MAX_SUBMISSION_LOGS = 500


def slugify(value: str) -> str:
    """Lower-case, hyphen-separated form used in document keys and draft ids."""
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower()).strip("-")
    return slug or "unknown"


def _counted(counts: dict[str, int | None]) -> int:
    return sum(1 for value in counts.values() if value is not None)


class WarehouseCountService:
    def __init__(self, store: DurableStore, settings: Settings):
        self.store = store
        self.settings = settings

    def _drafts_key(self, location: str) -> str:
        return WAREHOUSE_DRAFTS.format(location=slugify(location or DEFAULT_LOCATION))

    def _logs_key(self, location: str) -> str:
        return WAREHOUSE_LOGS.format(location=slugify(location or DEFAULT_LOCATION))

    async def _load(self, key: str) -> dict[str, Any]:
        loaded = await load_document(self.store, key, **retry_options(self.settings))
        return loaded.data if loaded else {}

    async def _mutate(self, key: str, fn, default: dict[str, Any]) -> Any:
        return await mutate_document(
            self.store,
            key,
            fn,
            default_factory=lambda: dict(default),
            conflict_retries=self.settings.store_conflict_retries,
            **retry_options(self.settings),
        )

    # ── Drafts ──────────────────────────────────────────────────────────

    async def get_draft(self, location: str, user_name: str) -> dict[str, Any] | None:
        drafts = (await self._load(self._drafts_key(location))).get("drafts", {})
        return drafts.get(slugify(user_name))

    async def get_draft_by_id(self, location: str, draft_id: str) -> dict[str, Any]:
        drafts = (await self._load(self._drafts_key(location))).get("drafts", {})
        draft = drafts.get(draft_id)
        if draft is None:
            raise NotFoundError("Draft not found")
        return draft

    async def list_drafts(self, location: str) -> list[dict[str, Any]]:
        """Summaries of every saved draft at a location, newest first."""
        drafts = (await self._load(self._drafts_key(location))).get("drafts", {})
        summaries = [
            {
                "draftId": draft_id,
                "savedBy": draft.get("savedBy"),
                "savedAt": draft.get("savedAt"),
                "skuCount": _counted(draft.get("counts", {})),
            }
            for draft_id, draft in drafts.items()
        ]
        summaries.sort(key=lambda s: s["savedAt"] or "", reverse=True)
        return summaries

    async def save_draft(self, location: str, counts: dict[str, int | None], actor: Actor) -> dict[str, Any]:
        if not counts:
            raise ValidationError("No counts provided")
        for sku, value in counts.items():
            if value is not None and value < 0:
                raise ValidationError(f"Count for {sku} cannot be negative")

        draft = {"counts": dict(counts), "savedAt": now_iso(), "savedBy": actor.name}

        def write(doc: dict[str, Any]) -> None:
            doc.setdefault("drafts", {})[slugify(actor.name)] = draft

        await self._mutate(self._drafts_key(location), write, {"drafts": {}})
        logger.info("warehouse.draft_saved", location=location, saved_by=actor.name, skus=_counted(counts))
        return {"savedAt": draft["savedAt"], "savedBy": actor.name, "skuCount": _counted(counts)}

    async def delete_draft(self, location: str, actor: Actor) -> bool:
        def drop(doc: dict[str, Any]) -> bool:
            return doc.setdefault("drafts", {}).pop(slugify(actor.name), None) is not None

        removed = await self._mutate(self._drafts_key(location), drop, {"drafts": {}})
        logger.info("warehouse.draft_deleted", location=location, user=actor.name, removed=removed)
        return removed

    async def delete_all_drafts(self, location: str) -> int:
        def clear(doc: dict[str, Any]) -> int:
            count = len(doc.get("drafts", {}))
            doc["drafts"] = {}
            return count

        removed = await self._mutate(self._drafts_key(location), clear, {"drafts": {}})
        logger.info("warehouse.drafts_cleared", location=location, removed=removed)
        return removed

    # ── Submission logs ─────────────────────────────────────────────────

    async def list_logs(self, location: str) -> list[dict[str, Any]]:
        return (await self._load(self._logs_key(location))).get("logs", [])

    async def append_log(self, location: str, entry: dict[str, Any]) -> int:
        """Record a submission at the front of the location's log; returns the log length."""
        if not entry:
            raise ValidationError("No log entry provided")
        record = {**entry, "location": location or DEFAULT_LOCATION}
        record.setdefault("timestamp", now_iso())

        def prepend(doc: dict[str, Any]) -> int:
            logs = [record, *doc.get("logs", [])][:MAX_SUBMISSION_LOGS]
            doc["logs"] = logs
            doc["lastUpdated"] = now_iso()
            return len(logs)

        total = await self._mutate(self._logs_key(location), prepend, {"logs": []})
        logger.info("warehouse.submission_logged", location=record["location"], total=total)
        return total
