"""
SKU Metadata Routers — hidden SKUs, phase-out SKUs and per-SKU comments.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.deps import (
    actor_from,
    get_current_user,
    get_hidden_skus,
    get_phase_out_skus,
    get_sku_comments,
    require_writer,
)
from retail.sku_comments import SkuCommentService
from retail.sku_lists import SkuListService

hidden_router = APIRouter(prefix="/api/v1/hidden-skus", tags=["sku-lists"])
phase_out_router = APIRouter(prefix="/api/v1/phase-out", tags=["sku-lists"])
comments_router = APIRouter(prefix="/api/v1/sku-comments", tags=["sku-lists"])


# ─── Schemas ────────────────────────────────────────────────────────────────

class SkuRequest(BaseModel):
    sku: str


class CommentRequest(BaseModel):
    sku: str
    comment: str = ""


# ─── Endpoints ──────────────────────────────────────────────────────────────

def _register_list_routes(router: APIRouter, get_service) -> None:
    @router.get("")
    async def list_skus(
        service: SkuListService = Depends(get_service),
        user: dict = Depends(get_current_user),
    ):
        return await service.list()

    @router.post("")
    async def add_sku(
        body: SkuRequest,
        service: SkuListService = Depends(get_service),
        user: dict = Depends(require_writer),
    ):
        return await service.add(body.sku, actor_from(user))

    @router.delete("")
    async def remove_sku(
        sku: str = Query(..., min_length=1),
        service: SkuListService = Depends(get_service),
        user: dict = Depends(require_writer),
    ):
        return await service.remove(sku)


_register_list_routes(hidden_router, get_hidden_skus)
_register_list_routes(phase_out_router, get_phase_out_skus)


@comments_router.get("")
async def list_comments(
    service: SkuCommentService = Depends(get_sku_comments),
    user: dict = Depends(get_current_user),
):
    return await service.list()


@comments_router.post("")
async def save_comment(
    body: CommentRequest,
    service: SkuCommentService = Depends(get_sku_comments),
    user: dict = Depends(require_writer),
):
    """Add or replace a SKU's comment; an empty comment removes it."""
    return await service.set(body.sku, body.comment, actor_from(user))


@comments_router.delete("")
async def delete_comment(
    sku: str = Query(..., min_length=1),
    service: SkuCommentService = Depends(get_sku_comments),
    user: dict = Depends(require_writer),
):
    return await service.delete(sku)
