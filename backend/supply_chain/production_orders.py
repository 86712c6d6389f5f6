"""
Production Order Ledger — manufacturing orders awaiting delivery.

Tracks ordered vs received quantity per SKU the same way transfers do, but has
no effect on the incoming projection: pending order quantities are reported
separately (`pending_by_sku`) and cached alongside the inventory snapshot.

Status follows receipts: in_production -> partial -> completed, plus cancelled.
"""

import random
import string
import time
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from alerts.dispatcher import (
    PRODUCTION_ORDER_CANCELLED,
    PRODUCTION_ORDER_CREATED,
    PRODUCTION_ORDER_DELIVERY,
    NotificationDispatcher,
)
from core.config import Settings
from core.errors import InvalidTransitionError, ItemSetChangedWithReceiptsError, NotFoundError, ValidationError
from store import PRODUCTION_ORDERS, DurableStore, load_document, mutate_document, retry_options
from supply_chain.models import (
    ActivityLogEntry,
    Actor,
    Delivery,
    OrderStatus,
    ProductionOrder,
    ProductionOrderItem,
    now_iso,
)
from supply_chain.status import derive_order_status
from supply_chain.transfers import apply_deliveries

logger = structlog.get_logger()

OPEN_STATUSES = (OrderStatus.IN_PRODUCTION, OrderStatus.PARTIAL)


class OrderItemInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sku: str
    quantity: int
    master_cartons: int | None = None


class OrderChanges(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    notes: str | None = None
    vendor: str | None = None
    eta: str | None = None
    po_number: str | None = None
    items: list[OrderItemInput] | None = None
    status: OrderStatus | None = None
    deliveries: list[Delivery] | None = None
    confirm_item_changes: bool = False


@dataclass
class _Outcome:
    before: ProductionOrder
    after: ProductionOrder
    applied: dict[str, int] = field(default_factory=dict)


def generate_order_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"PO-{int(time.time() * 1000)}-{suffix}"


def _validate_items(items: list[OrderItemInput]) -> None:
    if not items:
        raise ValidationError("At least one item is required")
    for item in items:
        if not item.sku or not item.sku.strip() or item.quantity <= 0:
            raise ValidationError(
                "Each item must have a valid SKU and positive quantity",
                details={"sku": item.sku, "quantity": item.quantity},
            )


def _replace_items(
    current: list[ProductionOrderItem], replacement: list[OrderItemInput], confirm: bool
) -> list[ProductionOrderItem]:
    _validate_items(replacement)
    received: dict[tuple[str, str], int] = {}
    for item in current:
        received[item.key] = received.get(item.key, 0) + item.received_quantity

    merged = [
        ProductionOrderItem(sku=line.sku.strip(), quantity=line.quantity, master_cartons=line.master_cartons)
        for line in replacement
    ]
    if any(received.values()) and {i.key for i in merged} != {i.key for i in current} and not confirm:
        raise ItemSetChangedWithReceiptsError(
            "Items were added or removed on an order that already has receipts; "
            "resend with confirmItemChanges to proceed",
            details={"received": [{"sku": sku, "receivedQuantity": qty} for (sku, _), qty in received.items() if qty]},
        )
    for item in merged:
        got = received.pop(item.key, 0)
        if got > item.quantity:
            raise ValidationError(
                f"Quantity for {item.sku} cannot be lower than the {got} units already received",
                details={"sku": item.sku, "quantity": item.quantity, "receivedQuantity": got},
            )
        item.received_quantity = got
    return merged


class ProductionOrderService:
    def __init__(self, store: DurableStore, settings: Settings, dispatcher: NotificationDispatcher):
        self.store = store
        self.settings = settings
        self.dispatcher = dispatcher

    async def list_orders(self) -> list[ProductionOrder]:
        loaded = await load_document(self.store, PRODUCTION_ORDERS, **retry_options(self.settings))
        if loaded is None:
            return []
        return [ProductionOrder.model_validate(raw) for raw in loaded.data.get("orders", [])]

    async def _mutate(self, mutator):
        return await mutate_document(
            self.store,
            PRODUCTION_ORDERS,
            mutator,
            default_factory=lambda: {"orders": []},
            conflict_retries=self.settings.store_conflict_retries,
            **retry_options(self.settings),
        )

    async def create(
        self,
        items: list[OrderItemInput],
        notes: str,
        actor: Actor,
        vendor: str | None = None,
        eta: str | None = None,
        po_number: str | None = None,
        is_non_sku: bool = False,
    ) -> ProductionOrder:
        _validate_items(items)
        now = now_iso()
        order = ProductionOrder(
            id=generate_order_id(),
            items=[
                ProductionOrderItem(sku=i.sku.strip(), quantity=i.quantity, master_cartons=i.master_cartons)
                for i in items
            ],
            notes=notes or "",
            vendor=vendor or None,
            eta=eta or None,
            po_number=po_number or None,
            is_non_sku=is_non_sku,
            status=OrderStatus.IN_PRODUCTION,
            created_by=actor.name,
            created_by_email=actor.email,
            created_at=now,
            updated_at=now,
            activity_log=[
                ActivityLogEntry(
                    timestamp=now,
                    action="Order Created",
                    changed_by=actor.name,
                    changed_by_email=actor.email,
                    details=f"{len(items)} item(s)" + (f" from {vendor}" if vendor else ""),
                )
            ],
        )

        def prepend(doc: dict[str, Any]) -> None:
            doc.setdefault("orders", []).insert(0, order.to_json())
            doc["lastUpdated"] = now

        await self._mutate(prepend)
        logger.info("production_order.created", order_id=order.id, items=len(order.items), vendor=vendor)

        self.dispatcher.notify(
            PRODUCTION_ORDER_CREATED,
            {
                "orderId": order.id,
                "poNumber": order.po_number,
                "vendor": order.vendor,
                "eta": order.eta,
                "notes": order.notes,
                "actor": actor.name,
                "items": [{"sku": i.sku, "quantity": i.quantity} for i in order.items],
            },
        )
        return order

    async def update(self, order_id: str, changes: OrderChanges, actor: Actor) -> ProductionOrder:
        if changes.status is not None and changes.status is not OrderStatus.CANCELLED:
            raise ValidationError(
                "Order status follows deliveries; only cancellation can be requested",
                details={"status": changes.status.value},
            )

        outcome: _Outcome = await self._mutate(lambda doc: self._apply(doc, order_id, changes, actor))
        self._notify(outcome, actor)
        return outcome.after

    async def log_delivery(self, order_id: str, deliveries: list[Delivery], actor: Actor) -> ProductionOrder:
        if not deliveries:
            raise ValidationError("At least one delivery is required")
        return await self.update(order_id, OrderChanges(deliveries=deliveries), actor)

    def _apply(self, doc: dict[str, Any], order_id: str, changes: OrderChanges, actor: Actor) -> _Outcome:
        orders = doc.setdefault("orders", [])
        index = next((i for i, raw in enumerate(orders) if raw.get("id") == order_id), None)
        if index is None:
            raise NotFoundError("Order not found", details={"orderId": order_id})

        before = ProductionOrder.model_validate(orders[index])
        after = before.model_copy(deep=True)
        outcome = _Outcome(before=before, after=after)
        now = now_iso()
        entries: list[ActivityLogEntry] = []

        def entry(action: str, details: str | None = None) -> None:
            entries.append(
                ActivityLogEntry(
                    timestamp=now,
                    action=action,
                    changed_by=actor.name,
                    changed_by_email=actor.email,
                    details=details,
                )
            )

        edited = []
        for name in ("notes", "vendor", "eta", "po_number"):
            value = getattr(changes, name)
            if value is not None and value != getattr(after, name):
                setattr(after, name, value)
                edited.append(name)
        if changes.items is not None:
            if after.status not in OPEN_STATUSES:
                raise ValidationError(f"Items of a {after.status.value} order cannot be changed")
            merged = _replace_items(after.items, changes.items, changes.confirm_item_changes)
            if [i.to_json() for i in merged] != [i.to_json() for i in after.items]:
                after.items = merged
                edited.append("items")
        if edited:
            entry("Order Updated", "Changed: " + ", ".join(edited))

        if changes.deliveries:
            if after.status not in OPEN_STATUSES:
                raise ValidationError(
                    f"Deliveries cannot be logged for a {after.status.value} order",
                    details={"status": after.status.value},
                )
            outcome.applied = apply_deliveries(after.items, changes.deliveries)
            if outcome.applied:
                after.status = derive_order_status(after.items, after.status)
                entry("Delivery Logged", ", ".join(f"{sku}: {qty}" for sku, qty in outcome.applied.items()))
                if after.status is OrderStatus.COMPLETED:
                    after.completed_at = now

        if changes.status is OrderStatus.CANCELLED and after.status is not OrderStatus.CANCELLED:
            if after.status is OrderStatus.COMPLETED:
                raise InvalidTransitionError(
                    "A completed order cannot be cancelled",
                    details={"from": after.status.value, "to": OrderStatus.CANCELLED.value},
                )
            after.status = OrderStatus.CANCELLED
            after.cancelled_at = now
            entry("Order Cancelled", f"Previous status: {before.status.value}")

        if entries:
            after.updated_at = now
            after.activity_log.extend(entries)
            orders[index] = after.to_json()
            doc["lastUpdated"] = now
            logger.info(
                "production_order.updated",
                order_id=order_id,
                status_before=before.status.value,
                status_after=after.status.value,
                delivered=outcome.applied or None,
            )
        return outcome

    def _notify(self, outcome: _Outcome, actor: Actor) -> None:
        before, after = outcome.before, outcome.after
        base = {
            "orderId": after.id,
            "poNumber": after.po_number,
            "vendor": after.vendor,
            "actor": actor.name,
        }
        if outcome.applied and after.status in (OrderStatus.PARTIAL, OrderStatus.COMPLETED):
            pending = [{"sku": i.sku, "quantity": i.remaining} for i in after.items if i.remaining > 0]
            self.dispatcher.notify(
                PRODUCTION_ORDER_DELIVERY,
                {
                    **base,
                    "status": "delivered" if after.status is OrderStatus.COMPLETED else "partial",
                    "location": self.settings.production_receiving_location,
                    "deliveredItems": [{"sku": sku, "quantity": qty} for sku, qty in outcome.applied.items()],
                    "pendingItems": pending or None,
                },
            )
        # Cancelling an order that never left production is not announced.
        if (
            after.status is OrderStatus.CANCELLED
            and before.status is not OrderStatus.CANCELLED
            and before.status is not OrderStatus.IN_PRODUCTION
        ):
            self.dispatcher.notify(
                PRODUCTION_ORDER_CANCELLED,
                {**base, "items": [{"sku": i.sku, "quantity": i.quantity} for i in after.items]},
            )

    async def delete(self, order_ids: list[str]) -> tuple[list[str], list[ProductionOrder]]:
        """Hard delete (test data cleanup). Returns deleted ids and the remaining orders."""
        if not order_ids:
            raise ValidationError("Request body must include orderIds")
        wanted = {str(order_id) for order_id in order_ids}

        def remove(doc: dict[str, Any]) -> tuple[list[str], list[dict]]:
            orders = doc.setdefault("orders", [])
            deleted = [raw["id"] for raw in orders if raw.get("id") in wanted]
            kept = [raw for raw in orders if raw.get("id") not in wanted]
            if deleted:
                doc["orders"] = kept
                doc["lastUpdated"] = now_iso()
            return deleted, kept

        deleted, kept = await self._mutate(remove)
        logger.info("production_order.deleted", requested=len(wanted), deleted=len(deleted))
        return deleted, [ProductionOrder.model_validate(raw) for raw in kept]

    async def pending_by_sku(self) -> dict[str, int]:
        """Ordered minus received per SKU over open orders."""
        pending: dict[str, int] = {}
        for order in await self.list_orders():
            if order.status not in OPEN_STATUSES or order.is_non_sku:
                continue
            for item in order.items:
                if item.remaining > 0:
                    pending[item.sku] = pending.get(item.sku, 0) + item.remaining
        return pending
