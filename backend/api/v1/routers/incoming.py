"""
Incoming Inventory Router — the in-flight projection by destination and SKU.
"""

from fastapi import APIRouter, Depends, Query

from api.deps import get_current_user, get_incoming_service, get_transfer_service, require_writer
from supply_chain.incoming import IncomingInventoryService
from supply_chain.transfers import TransferService

router = APIRouter(prefix="/api/v1/incoming", tags=["incoming"])


@router.get("")
async def get_incoming_inventory(
    incoming: IncomingInventoryService = Depends(get_incoming_service),
    user: dict = Depends(get_current_user),
):
    return {"success": True, "incomingInventory": await incoming.get()}


@router.delete("")
async def remove_incoming_sku(
    sku: str = Query(..., min_length=1),
    incoming: IncomingInventoryService = Depends(get_incoming_service),
    user: dict = Depends(require_writer),
):
    """Manual cleanup: drop a SKU from every destination."""
    touched = await incoming.remove_sku(sku)
    if not touched:
        return {"success": False, "message": f"SKU {sku} not found in incoming inventory"}
    return {
        "success": True,
        "message": f"Removed {sku} from incoming inventory at {', '.join(touched)}",
    }


@router.post("/rebuild")
async def rebuild_incoming_inventory(
    incoming: IncomingInventoryService = Depends(get_incoming_service),
    transfers: TransferService = Depends(get_transfer_service),
    user: dict = Depends(require_writer),
):
    """Recompute the projection from the transfer ledger and replace it."""
    projection, stats = await incoming.rebuild(await transfers.list_transfers())
    return {"success": True, "stats": stats, "incomingInventory": projection}
