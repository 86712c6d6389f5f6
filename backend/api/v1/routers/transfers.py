"""
Transfers Router — shipment ledger endpoints.

Lifecycle:
  1. Transfer recorded as a draft
  2. Marked in transit → stock checked at origin, units projected at destination
  3. Deliveries logged → projection reduced, status partial / delivered
  4. Cancelled at any point before delivery → projected units dropped

When Shopify is configured, shipping and deliveries also move platform stock;
the per-item outcome is returned under `shopifySync`.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from api.deps import actor_from, get_current_user, get_transfer_service, require_writer
from supply_chain.models import Delivery, Transfer, TransferType
from supply_chain.transfers import TransferChanges, TransferItemInput, TransferService

router = APIRouter(prefix="/api/v1/transfers", tags=["transfers"])


# ─── Schemas ────────────────────────────────────────────────────────────────

class TransferCreateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    origin: str
    destination: str
    transfer_type: TransferType
    items: list[TransferItemInput]
    carrier: str | None = None
    tracking_number: str | None = None
    eta: str | None = None
    notes: str | None = None


class DeliveryRequest(BaseModel):
    deliveries: list[Delivery]


def _transfer_response(transfer: Transfer, stock_moves: dict | None) -> dict:
    body = {"transfer": transfer.to_json()}
    if stock_moves is not None:
        body["shopifySync"] = stock_moves
    return body


# ─── Endpoints ──────────────────────────────────────────────────────────────

@router.get("")
async def list_transfers(
    service: TransferService = Depends(get_transfer_service),
    user: dict = Depends(get_current_user),
):
    """All transfers, newest first."""
    transfers = await service.list_transfers()
    return {"transfers": [t.to_json() for t in transfers]}


@router.post("", status_code=201)
async def create_transfer(
    body: TransferCreateRequest,
    service: TransferService = Depends(get_transfer_service),
    user: dict = Depends(require_writer),
):
    transfer = await service.create(
        origin=body.origin,
        destination=body.destination,
        transfer_type=body.transfer_type,
        items=body.items,
        actor=actor_from(user),
        carrier=body.carrier,
        tracking_number=body.tracking_number,
        eta=body.eta,
        notes=body.notes,
    )
    return {"transfer": transfer.to_json()}


@router.get("/{transfer_id}")
async def get_transfer(
    transfer_id: str,
    service: TransferService = Depends(get_transfer_service),
    user: dict = Depends(get_current_user),
):
    transfer = await service.get(transfer_id)
    return {"transfer": transfer.to_json()}


@router.patch("/{transfer_id}")
async def update_transfer(
    transfer_id: str,
    changes: TransferChanges,
    service: TransferService = Depends(get_transfer_service),
    user: dict = Depends(require_writer),
):
    """
    Edit fields, change status and/or log deliveries in one request.

    Replacing items on a transfer that already has receipts requires
    `confirmItemChanges: true` when SKUs are added or removed.
    """
    transfer, stock_moves = await service.update_with_report(transfer_id, changes, actor_from(user))
    return _transfer_response(transfer, stock_moves)


@router.post("/{transfer_id}/deliveries")
async def log_transfer_delivery(
    transfer_id: str,
    body: DeliveryRequest,
    service: TransferService = Depends(get_transfer_service),
    user: dict = Depends(require_writer),
):
    transfer, stock_moves = await service.log_delivery_with_report(transfer_id, body.deliveries, actor_from(user))
    return _transfer_response(transfer, stock_moves)
