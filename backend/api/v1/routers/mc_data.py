"""
Master Carton Router — units per master carton for each SKU.
"""

from fastapi import APIRouter, Body, Depends

from api.deps import get_current_user, get_master_cartons, require_writer
from retail.master_cartons import MasterCartonService

router = APIRouter(prefix="/api/v1/mc-data", tags=["mc-data"])


@router.get("")
async def get_master_carton_data(
    service: MasterCartonService = Depends(get_master_cartons),
    user: dict = Depends(get_current_user),
):
    return await service.get()


@router.post("")
async def save_master_carton_data(
    data: dict = Body(...),
    service: MasterCartonService = Depends(get_master_cartons),
    user: dict = Depends(require_writer),
):
    """Replace the whole map."""
    return {"success": True, "data": await service.replace(data)}
