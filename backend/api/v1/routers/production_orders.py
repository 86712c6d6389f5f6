"""
Production Order Router — factory orders awaiting delivery.

Orders start in production, move to partial as deliveries are logged and
complete when every unit has arrived. Cancellation is the only status an
operator sets by hand.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from api.deps import actor_from, get_current_user, get_production_order_service, require_writer
from supply_chain.models import Delivery
from supply_chain.production_orders import OrderChanges, OrderItemInput, ProductionOrderService

router = APIRouter(prefix="/api/v1/production-orders", tags=["production-orders"])


# ─── Schemas ────────────────────────────────────────────────────────────────

class OrderCreateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: list[OrderItemInput]
    notes: str = ""
    vendor: str | None = None
    eta: str | None = None
    po_number: str | None = None
    is_non_sku: bool = False


class OrderDeleteRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_ids: list[str] = Field(default_factory=list)


class DeliveryRequest(BaseModel):
    deliveries: list[Delivery]


# ─── Endpoints ──────────────────────────────────────────────────────────────

@router.get("")
async def list_production_orders(
    service: ProductionOrderService = Depends(get_production_order_service),
    user: dict = Depends(get_current_user),
):
    orders = await service.list_orders()
    return {"orders": [o.to_json() for o in orders]}


@router.post("", status_code=201)
async def create_production_order(
    body: OrderCreateRequest,
    service: ProductionOrderService = Depends(get_production_order_service),
    user: dict = Depends(require_writer),
):
    order = await service.create(
        items=body.items,
        notes=body.notes,
        actor=actor_from(user),
        vendor=body.vendor,
        eta=body.eta,
        po_number=body.po_number,
        is_non_sku=body.is_non_sku,
    )
    return {"order": order.to_json()}


@router.delete("")
async def delete_production_orders(
    body: OrderDeleteRequest,
    service: ProductionOrderService = Depends(get_production_order_service),
    user: dict = Depends(require_writer),
):
    """Hard delete, for cleaning up test orders."""
    deleted, remaining = await service.delete(body.order_ids)
    return {
        "message": f"Deleted {len(deleted)} order(s)",
        "deletedCount": len(deleted),
        "deletedIds": deleted,
        "orders": [o.to_json() for o in remaining],
    }


@router.get("/pending")
async def pending_production_quantities(
    service: ProductionOrderService = Depends(get_production_order_service),
    user: dict = Depends(get_current_user),
):
    """Ordered minus received per SKU across open orders."""
    pending = await service.pending_by_sku()
    return {
        "purchaseOrders": [
            {"sku": sku, "pendingQuantity": quantity} for sku, quantity in sorted(pending.items())
        ]
    }


@router.patch("/{order_id}")
async def update_production_order(
    order_id: str,
    changes: OrderChanges,
    service: ProductionOrderService = Depends(get_production_order_service),
    user: dict = Depends(require_writer),
):
    order = await service.update(order_id, changes, actor_from(user))
    return {"order": order.to_json()}


@router.post("/{order_id}/deliveries")
async def log_production_delivery(
    order_id: str,
    body: DeliveryRequest,
    service: ProductionOrderService = Depends(get_production_order_service),
    user: dict = Depends(require_writer),
):
    order = await service.log_delivery(order_id, body.deliveries, actor_from(user))
    return {"order": order.to_json()}
