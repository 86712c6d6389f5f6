"""
Inventory Router — cached stock snapshot, manual refresh and physical-count updates.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from alerts.dispatcher import NotificationDispatcher
from api.deps import (
    get_cache_service,
    get_current_user,
    get_dispatcher,
    get_shopify_client,
    get_store,
    require_writer,
)
from core.config import get_settings
from core.errors import NotFoundError, ValidationError
from integrations.shopify import ShopifyClient
from inventory.cache import InventoryCacheService
from store import DurableStore
from supply_chain.models import now_iso
from workers.refresh import refresh_inventory

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class QuantityUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sku: str
    inventory_item_id: str
    location_id: str
    quantity: int = Field(..., ge=0)


class InventoryUpdateRequest(BaseModel):
    updates: list[QuantityUpdate]
    reason: str = "correction"


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("")
async def get_cached_inventory(
    cache: InventoryCacheService = Depends(get_cache_service),
    user: dict = Depends(get_current_user),
):
    """The cached envelope plus its age; 404 until the first refresh."""
    envelope = await cache.load()
    if envelope is None:
        raise NotFoundError("No cached inventory yet. Trigger a refresh first.")
    return {**envelope, "cacheAgeMinutes": await cache.cache_age_minutes()}


@router.post("/refresh")
async def refresh_cached_inventory(
    user: dict = Depends(require_writer),
    store: DurableStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    client: ShopifyClient = Depends(get_shopify_client),
):
    summary = await refresh_inventory(
        store,
        get_settings(),
        dispatcher,
        refreshed_by=user.get("email") or user.get("name") or "unknown",
        client=client,
    )
    return {"success": True, "message": "Inventory cache refreshed", **summary}


@router.post("/update")
async def update_inventory_quantities(
    body: InventoryUpdateRequest,
    user: dict = Depends(require_writer),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """
    Write physical-count corrections to Shopify.

    Batches fail independently, so the response reports per-item results and
    `success` is true only when every item went through.
    """
    if not body.updates:
        raise ValidationError("At least one update is required")
    results = await client.set_on_hand_quantities(
        [u.model_dump(by_alias=True) for u in body.updates],
        reason=body.reason,
    )
    succeeded = sum(1 for r in results if r["success"])
    return {
        "success": succeeded == len(results),
        "summary": {"total": len(results), "success": succeeded, "failed": len(results) - succeeded},
        "results": results,
        "updatedBy": user.get("email"),
        "timestamp": now_iso(),
    }
