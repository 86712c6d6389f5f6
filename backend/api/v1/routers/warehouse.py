"""
Warehouse Router — physical count drafts and submission history.

Drafts are saved per signed-in user and location so a count can be resumed
later. Submission logs record counts already pushed to Shopify.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.deps import actor_from, get_current_user, get_warehouse_counts, require_writer
from retail.warehouse import DEFAULT_LOCATION, WarehouseCountService

router = APIRouter(prefix="/api/v1/warehouse", tags=["warehouse"])


# ─── Schemas ────────────────────────────────────────────────────────────────

class DraftRequest(BaseModel):
    counts: dict[str, int | None]
    location: str = DEFAULT_LOCATION


class SubmissionLogRequest(BaseModel):
    log: dict[str, Any]
    location: str = DEFAULT_LOCATION


# ─── Endpoints ──────────────────────────────────────────────────────────────

@router.get("/drafts")
async def get_drafts(
    location: str = Query(DEFAULT_LOCATION),
    list_all: bool = Query(False, alias="list"),
    draft_id: str | None = Query(None, alias="draftId"),
    service: WarehouseCountService = Depends(get_warehouse_counts),
    user: dict = Depends(get_current_user),
):
    """
    The caller's own draft by default.

    `list=true` returns every draft at the location; `draftId` loads one of them.
    """
    actor = actor_from(user)
    if list_all:
        return {"drafts": await service.list_drafts(location), "currentUser": actor.name}
    if draft_id:
        return {"draft": await service.get_draft_by_id(location, draft_id), "draftId": draft_id}
    return {"draft": await service.get_draft(location, actor.name)}


@router.post("/drafts")
async def save_draft(
    body: DraftRequest,
    service: WarehouseCountService = Depends(get_warehouse_counts),
    user: dict = Depends(get_current_user),
):
    saved = await service.save_draft(body.location, body.counts, actor_from(user))
    return {"success": True, **saved}


@router.delete("/drafts")
async def delete_own_draft(
    location: str = Query(DEFAULT_LOCATION),
    service: WarehouseCountService = Depends(get_warehouse_counts),
    user: dict = Depends(get_current_user),
):
    removed = await service.delete_draft(location, actor_from(user))
    return {"success": True, "removed": int(removed)}


@router.delete("/drafts/all")
async def delete_all_drafts(
    location: str = Query(DEFAULT_LOCATION),
    service: WarehouseCountService = Depends(get_warehouse_counts),
    user: dict = Depends(require_writer),
):
    """Clear every user's draft at the location."""
    return {"success": True, "removed": await service.delete_all_drafts(location)}


@router.get("/logs")
async def list_submission_logs(
    location: str = Query(DEFAULT_LOCATION),
    service: WarehouseCountService = Depends(get_warehouse_counts),
    user: dict = Depends(get_current_user),
):
    return {"logs": await service.list_logs(location)}


@router.post("/logs")
async def add_submission_log(
    body: SubmissionLogRequest,
    service: WarehouseCountService = Depends(get_warehouse_counts),
    user: dict = Depends(require_writer),
):
    total = await service.append_log(body.location, body.log)
    return {"success": True, "totalLogs": total}
