"""
Tests — production order ledger and its endpoints.
"""

import re

import pytest

from alerts.dispatcher import PRODUCTION_ORDER_CANCELLED, PRODUCTION_ORDER_CREATED, PRODUCTION_ORDER_DELIVERY
from core.errors import InvalidTransitionError, ItemSetChangedWithReceiptsError, NotFoundError, ValidationError
from supply_chain.models import Delivery, OrderStatus
from supply_chain.production_orders import OrderChanges, OrderItemInput, generate_order_id


def order_items(*pairs):
    return [OrderItemInput(sku=sku, quantity=qty) for sku, qty in pairs]


def test_order_id_format():
    assert re.fullmatch(r"PO-\d{13}-[a-z0-9]{9}", generate_order_id())


@pytest.mark.asyncio
class TestProductionOrderService:
    async def test_create_notifies_and_prepends(self, order_service, dispatcher, notifier, actor):
        first = await order_service.create(order_items(("MBC101", 500)), "first run", actor, vendor="Acme")
        second = await order_service.create(order_items(("MBS200", 50)), "", actor)

        orders = await order_service.list_orders()
        assert [o.id for o in orders] == [second.id, first.id]
        assert first.status is OrderStatus.IN_PRODUCTION
        assert first.activity_log[0].action == "Order Created"

        await dispatcher.drain()
        assert notifier.kinds() == [PRODUCTION_ORDER_CREATED, PRODUCTION_ORDER_CREATED]
        assert notifier.events[0].payload["vendor"] == "Acme"

    async def test_requires_items(self, order_service, actor):
        with pytest.raises(ValidationError):
            await order_service.create([], "", actor)
        assert await order_service.list_orders() == []

    async def test_deliveries_progress_to_completed(self, order_service, dispatcher, notifier, actor, settings):
        order = await order_service.create(order_items(("MBC101", 100), ("MBS200", 20)), "", actor)

        partial = await order_service.log_delivery(order.id, [Delivery(sku="MBC101", quantity=100)], actor)
        assert partial.status is OrderStatus.PARTIAL

        done = await order_service.log_delivery(order.id, [Delivery(sku="mbs200", quantity=20)], actor)
        assert done.status is OrderStatus.COMPLETED
        assert done.completed_at is not None

        await dispatcher.drain()
        deliveries = [e for e in notifier.events if e.kind == PRODUCTION_ORDER_DELIVERY]
        assert [e.payload["status"] for e in deliveries] == ["partial", "delivered"]
        assert deliveries[0].payload["location"] == settings.production_receiving_location
        assert deliveries[0].payload["pendingItems"] == [{"sku": "MBS200", "quantity": 20}]
        assert deliveries[1].payload["pendingItems"] is None

    async def test_pending_by_sku(self, order_service, actor):
        a = await order_service.create(order_items(("MBC101", 100), ("MBS200", 20)), "", actor)
        await order_service.create(order_items(("MBC101", 50)), "", actor)
        await order_service.create(order_items(("PACKAGING", 999)), "boxes", actor, is_non_sku=True)
        cancelled = await order_service.create(order_items(("MBS200", 7)), "", actor)
        await order_service.log_delivery(a.id, [Delivery(sku="MBC101", quantity=30)], actor)
        await order_service.update(cancelled.id, OrderChanges(status=OrderStatus.CANCELLED), actor)

        assert await order_service.pending_by_sku() == {"MBC101": 120, "MBS200": 20}

    async def test_cancel_from_production_is_silent(self, order_service, dispatcher, notifier, actor):
        order = await order_service.create(order_items(("MBC101", 10)), "", actor)
        cancelled = await order_service.update(order.id, OrderChanges(status=OrderStatus.CANCELLED), actor)

        assert cancelled.status is OrderStatus.CANCELLED
        await dispatcher.drain()
        assert PRODUCTION_ORDER_CANCELLED not in notifier.kinds()

    async def test_cancel_partial_order_is_announced(self, order_service, dispatcher, notifier, actor):
        order = await order_service.create(order_items(("MBC101", 10)), "", actor)
        await order_service.log_delivery(order.id, [Delivery(sku="MBC101", quantity=4)], actor)
        await order_service.update(order.id, OrderChanges(status=OrderStatus.CANCELLED), actor)

        await dispatcher.drain()
        assert notifier.kinds()[-1] == PRODUCTION_ORDER_CANCELLED

    async def test_completed_order_cannot_be_cancelled(self, order_service, actor):
        order = await order_service.create(order_items(("MBC101", 10)), "", actor)
        await order_service.log_delivery(order.id, [Delivery(sku="MBC101", quantity=10)], actor)

        with pytest.raises(InvalidTransitionError):
            await order_service.update(order.id, OrderChanges(status=OrderStatus.CANCELLED), actor)

    async def test_only_cancellation_can_be_requested(self, order_service, actor):
        order = await order_service.create(order_items(("MBC101", 10)), "", actor)
        with pytest.raises(ValidationError):
            await order_service.update(order.id, OrderChanges(status=OrderStatus.COMPLETED), actor)

    async def test_item_replacement_keeps_receipts(self, order_service, actor):
        order = await order_service.create(order_items(("MBC101", 10)), "", actor)
        await order_service.log_delivery(order.id, [Delivery(sku="MBC101", quantity=4)], actor)

        with pytest.raises(ItemSetChangedWithReceiptsError):
            await order_service.update(order.id, OrderChanges(items=order_items(("MBS200", 5))), actor)

        updated = await order_service.update(order.id, OrderChanges(items=order_items(("MBC101", 12))), actor)
        assert updated.items[0].received_quantity == 4
        assert updated.items[0].quantity == 12

    async def test_edit_fields_logged(self, order_service, actor):
        order = await order_service.create(order_items(("MBC101", 10)), "", actor)
        updated = await order_service.update(order.id, OrderChanges(vendor="NewCo", po_number="PO-77"), actor)

        assert updated.vendor == "NewCo"
        assert updated.po_number == "PO-77"
        assert updated.activity_log[-1].details == "Changed: vendor, po_number"

    async def test_resubmitting_same_items_is_not_an_edit(self, order_service, actor):
        order = await order_service.create(order_items(("MBC101", 10), ("MBS200", 4)), "", actor)
        await order_service.log_delivery(order.id, [Delivery(sku="MBC101", quantity=3)], actor)
        before = next(o for o in await order_service.list_orders() if o.id == order.id)

        updated = await order_service.update(
            order.id, OrderChanges(items=order_items(("MBC101", 10), ("MBS200", 4))), actor
        )

        assert len(updated.activity_log) == len(before.activity_log)
        assert updated.updated_at == before.updated_at
        assert updated.items[0].received_quantity == 3

    async def test_items_edit_logged_alongside_fields(self, order_service, actor):
        order = await order_service.create(order_items(("MBC101", 10)), "", actor)

        updated = await order_service.update(
            order.id, OrderChanges(vendor="NewCo", items=order_items(("MBC101", 10))), actor
        )

        assert updated.activity_log[-1].details == "Changed: vendor"

    async def test_unknown_order(self, order_service, actor):
        with pytest.raises(NotFoundError):
            await order_service.update("PO-0-missing", OrderChanges(notes="x"), actor)

    async def test_delete(self, order_service, actor):
        keep = await order_service.create(order_items(("MBC101", 10)), "", actor)
        drop = await order_service.create(order_items(("MBC101", 10)), "", actor)

        deleted, remaining = await order_service.delete([drop.id, "PO-0-unknown"])

        assert deleted == [drop.id]
        assert [o.id for o in remaining] == [keep.id]


@pytest.mark.asyncio
class TestProductionOrdersAPI:
    async def test_create_list_and_deliver(self, client):
        created = await client.post(
            "/api/v1/production-orders",
            json={"items": [{"sku": "MBC101", "quantity": 100}], "notes": "run 1", "poNumber": "PO-1"},
        )
        assert created.status_code == 201
        order = created.json()["order"]
        assert order["poNumber"] == "PO-1"
        assert order["status"] == "in_production"

        delivered = await client.post(
            f"/api/v1/production-orders/{order['id']}/deliveries",
            json={"deliveries": [{"sku": "MBC101", "quantity": 25}]},
        )
        assert delivered.json()["order"]["status"] == "partial"

        pending = await client.get("/api/v1/production-orders/pending")
        assert pending.json() == {"purchaseOrders": [{"sku": "MBC101", "pendingQuantity": 75}]}

        listing = await client.get("/api/v1/production-orders")
        assert [o["id"] for o in listing.json()["orders"]] == [order["id"]]

    async def test_cancel_via_patch(self, client):
        created = await client.post("/api/v1/production-orders", json={"items": [{"sku": "MBC101", "quantity": 5}]})
        order_id = created.json()["order"]["id"]

        response = await client.patch(f"/api/v1/production-orders/{order_id}", json={"status": "cancelled"})

        assert response.status_code == 200
        assert response.json()["order"]["status"] == "cancelled"

    async def test_delete_requires_ids(self, client):
        response = await client.request("DELETE", "/api/v1/production-orders", json={"orderIds": []})
        assert response.status_code == 400
        assert response.json() == {"error": "Request body must include orderIds"}

    async def test_delete(self, client):
        created = await client.post("/api/v1/production-orders", json={"items": [{"sku": "MBC101", "quantity": 5}]})
        order_id = created.json()["order"]["id"]

        response = await client.request("DELETE", "/api/v1/production-orders", json={"orderIds": [order_id]})

        assert response.json() == {
            "message": "Deleted 1 order(s)",
            "deletedCount": 1,
            "deletedIds": [order_id],
            "orders": [],
        }
