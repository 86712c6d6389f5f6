"""
Transfer Ledger — shipments of SKU quantities between locations.

The ledger document is the source of truth:
    {"transfers": [newest first...], "nextTransferNumber": 12, "lastUpdated": ...}

Every change is one read-merge-write of that document. Once it is committed the
service keeps the incoming projection in step, queues notifications and, when
configured, mirrors shipped and received units onto Shopify stock:

    draft -> in_transit       stock check at origin, project remaining units
    deliveries                subtract the received delta from the projection
    -> cancelled              drop every projected line of the transfer
    edits while in flight     re-sync the transfer's projected lines
"""

from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from alerts.dispatcher import (
    TRANSFER_CANCELLED,
    TRANSFER_DELIVERY,
    TRANSFER_IN_TRANSIT,
    NotificationDispatcher,
)
from core.config import Settings
from core.errors import (
    InsufficientStockError,
    ItemSetChangedWithReceiptsError,
    NotFoundError,
    ValidationError,
)
from inventory.cache import InventoryCacheService
from store import TRANSFERS, DurableStore, load_document, mutate_document, retry_options
from supply_chain.incoming import IncomingInventoryService
from supply_chain.models import (
    ActivityLogEntry,
    Actor,
    Delivery,
    Transfer,
    TransferItem,
    TransferStatus,
    TransferType,
    now_iso,
)
from supply_chain.status import TERMINAL_TRANSFER_STATUSES, derive_transfer_status, ensure_transition
from supply_chain.stock_moves import ShopifyStockSync

logger = structlog.get_logger()

# Fields whose change alters what a transfer contributes to the projection.
PROJECTION_FIELDS = ("destination", "transfer_type", "items", "eta", "notes")

# Optional shipping details; an empty string in an edit removes them.
CLEARABLE_FIELDS = ("carrier", "tracking_number", "eta")


class TransferItemInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sku: str
    quantity: int
    pallet: str | None = None
    master_cartons: int | None = None


class TransferChanges(BaseModel):
    """
    Field-level update to a transfer. Unset fields are left alone; an empty
    string clears the carrier, tracking number or ETA.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    origin: str | None = None
    destination: str | None = None
    transfer_type: TransferType | None = None
    items: list[TransferItemInput] | None = None
    carrier: str | None = None
    tracking_number: str | None = None
    eta: str | None = None
    notes: str | None = None
    status: TransferStatus | None = None
    deliveries: list[Delivery] | None = None
    restocked_items: list[Delivery] | None = None
    confirm_item_changes: bool = False


@dataclass
class _Outcome:
    before: Transfer
    after: Transfer
    applied: dict[str, int] = field(default_factory=dict)
    edited: list[str] = field(default_factory=list)


def validate_items(items: list[TransferItemInput]) -> None:
    if not items:
        raise ValidationError("At least one item is required")
    for item in items:
        if not item.sku or not item.sku.strip() or item.quantity <= 0:
            raise ValidationError(
                "Each item must have a valid SKU and positive quantity",
                details={"sku": item.sku, "quantity": item.quantity},
            )


def validate_route(origin: str, destination: str) -> None:
    if not origin or not destination:
        raise ValidationError("Origin and destination are required")
    if origin == destination:
        raise ValidationError("Origin and destination cannot be the same")


def merge_items(
    current: list[TransferItem],
    replacement: list[TransferItemInput],
    confirm: bool,
) -> list[TransferItem]:
    """
    Replace item lines while keeping what has already been received.

    Receipts follow their (sku, pallet) line. Adding or removing lines on a
    transfer with receipts needs explicit confirmation.
    """
    validate_items(replacement)
    received = {}
    for item in current:
        received[item.key] = received.get(item.key, 0) + item.received_quantity

    merged = [
        TransferItem(
            sku=line.sku.strip(),
            quantity=line.quantity,
            pallet=line.pallet,
            master_cartons=line.master_cartons,
        )
        for line in replacement
    ]
    has_receipts = any(received.values())
    if has_receipts and {i.key for i in merged} != {i.key for i in current} and not confirm:
        raise ItemSetChangedWithReceiptsError(
            "Items were added or removed on a transfer that already has receipts; "
            "resend with confirmItemChanges to proceed",
            details={
                "received": [
                    {"sku": sku, "pallet": pallet or None, "receivedQuantity": qty}
                    for (sku, pallet), qty in received.items()
                    if qty
                ]
            },
        )

    for item in merged:
        left = received.pop(item.key, 0)
        if left > item.quantity:
            raise ValidationError(
                f"Quantity for {item.sku} cannot be lower than the {left} units already received",
                details={"sku": item.sku, "quantity": item.quantity, "receivedQuantity": left},
            )
        item.received_quantity = left
    return merged


def apply_deliveries(items: list[TransferItem], deliveries: list[Delivery]) -> dict[str, int]:
    """
    Add delivered deltas to received quantities; returns the units applied per line SKU.

    A delta larger than what is still outstanding is capped. Lines sharing a
    SKU (several pallets, or spellings differing only in case) are filled in
    order and each is credited under its own SKU.
    """
    by_sku: dict[str, list[TransferItem]] = {}
    for item in items:
        by_sku.setdefault(item.sku.upper(), []).append(item)

    for delivery in deliveries:
        if delivery.quantity <= 0:
            raise ValidationError(
                "Delivered quantities must be positive",
                details={"sku": delivery.sku, "quantity": delivery.quantity},
            )
        if delivery.sku.strip().upper() not in by_sku:
            raise ValidationError(f"SKU {delivery.sku} is not on this record", details={"sku": delivery.sku})

    applied: dict[str, int] = {}
    for delivery in deliveries:
        lines = by_sku[delivery.sku.strip().upper()]
        left = delivery.quantity
        for line in lines:
            take = min(left, line.remaining)
            if take:
                line.received_quantity += take
                applied[line.sku] = applied.get(line.sku, 0) + take
                left -= take
        if left:
            logger.warning(
                "delivery.capped", sku=delivery.sku, requested=delivery.quantity, applied=delivery.quantity - left
            )
    return applied


def _describe_deliveries(applied: dict[str, int]) -> str:
    return ", ".join(f"{sku}: {qty}" for sku, qty in applied.items())


class TransferService:
    def __init__(
        self,
        store: DurableStore,
        settings: Settings,
        dispatcher: NotificationDispatcher,
        incoming: IncomingInventoryService | None = None,
        cache: InventoryCacheService | None = None,
        stock_sync: ShopifyStockSync | None = None,
    ):
        self.store = store
        self.settings = settings
        self.dispatcher = dispatcher
        self.cache = cache or InventoryCacheService(store, settings)
        self.incoming = incoming or IncomingInventoryService(self.cache)
        self.stock_sync = stock_sync

    # ── Reads ──────────────────────────────────────────────────────────

    async def list_transfers(self) -> list[Transfer]:
        loaded = await load_document(self.store, TRANSFERS, **retry_options(self.settings))
        if loaded is None:
            return []
        return [Transfer.model_validate(raw) for raw in loaded.data.get("transfers", [])]

    async def get(self, transfer_id: str) -> Transfer:
        for transfer in await self.list_transfers():
            if transfer.id == transfer_id:
                return transfer
        raise NotFoundError("Transfer not found", details={"transferId": transfer_id})

    async def _mutate(self, mutator):
        return await mutate_document(
            self.store,
            TRANSFERS,
            mutator,
            default_factory=lambda: {"transfers": [], "nextTransferNumber": 1},
            conflict_retries=self.settings.store_conflict_retries,
            **retry_options(self.settings),
        )

    # ── Create ─────────────────────────────────────────────────────────

    async def create(
        self,
        origin: str,
        destination: str,
        transfer_type: TransferType,
        items: list[TransferItemInput],
        actor: Actor,
        carrier: str | None = None,
        tracking_number: str | None = None,
        eta: str | None = None,
        notes: str | None = None,
    ) -> Transfer:
        """Record a draft transfer. Stock is checked later, when it ships."""
        validate_route(origin, destination)
        validate_items(items)
        transfer_type = TransferType(transfer_type)

        def append(doc: dict[str, Any]) -> Transfer:
            transfers = doc.setdefault("transfers", [])
            number = doc.get("nextTransferNumber") or self._next_number_from(transfers)
            now = now_iso()
            transfer = Transfer(
                id=f"T{number:04d}",
                origin=origin,
                destination=destination,
                transfer_type=transfer_type,
                items=[
                    TransferItem(
                        sku=item.sku.strip(),
                        quantity=item.quantity,
                        pallet=item.pallet,
                        master_cartons=item.master_cartons,
                    )
                    for item in items
                ],
                carrier=carrier or None,
                tracking_number=tracking_number or None,
                eta=eta or None,
                notes=notes or "",
                status=TransferStatus.DRAFT,
                created_by=actor.name,
                created_by_email=actor.email,
                created_at=now,
                updated_at=now,
                activity_log=[
                    ActivityLogEntry(
                        timestamp=now,
                        action="Transfer Created",
                        changed_by=actor.name,
                        changed_by_email=actor.email,
                        details=f"{origin} → {destination} ({transfer_type.value}), {len(items)} item(s)",
                    )
                ],
            )
            transfers.insert(0, transfer.to_json())
            doc["nextTransferNumber"] = number + 1
            doc["lastUpdated"] = now
            return transfer

        transfer = await self._mutate(append)
        logger.info("transfer.created", transfer_id=transfer.id, origin=origin, destination=destination)
        return transfer

    @staticmethod
    def _next_number_from(transfers: list[dict]) -> int:
        numbers = [
            int(raw["id"][1:])
            for raw in transfers
            if isinstance(raw.get("id"), str) and raw["id"].startswith("T") and raw["id"][1:].isdigit()
        ]
        return max(numbers, default=0) + 1

    # ── Update ─────────────────────────────────────────────────────────

    async def update(self, transfer_id: str, changes: TransferChanges, actor: Actor) -> Transfer:
        """
        Apply field edits, deliveries and/or a status change in one ledger write,
        then bring the projection and notifications in line.
        """
        transfer, _ = await self.update_with_report(transfer_id, changes, actor)
        return transfer

    async def update_with_report(
        self, transfer_id: str, changes: TransferChanges, actor: Actor
    ) -> tuple[Transfer, dict[str, Any] | None]:
        """`update`, plus the platform stock-move report (None when no move was due)."""
        if changes.status is TransferStatus.PARTIAL and not changes.deliveries:
            raise ValidationError("Partial status is reached by logging deliveries, not set directly")

        current = await self.get(transfer_id)
        if (
            changes.status is TransferStatus.IN_TRANSIT
            and current.status is TransferStatus.DRAFT
        ):
            await self._check_stock(
                changes.origin or current.origin,
                changes.items if changes.items is not None else current.items,
            )

        outcome: _Outcome = await self._mutate(lambda doc: self._apply(doc, transfer_id, changes, actor))
        await self._sync_projection(outcome)
        self._notify(outcome, actor, changes)
        return outcome.after, await self._move_stock(outcome)

    async def log_delivery(self, transfer_id: str, deliveries: list[Delivery], actor: Actor) -> Transfer:
        transfer, _ = await self.log_delivery_with_report(transfer_id, deliveries, actor)
        return transfer

    async def log_delivery_with_report(
        self, transfer_id: str, deliveries: list[Delivery], actor: Actor
    ) -> tuple[Transfer, dict[str, Any] | None]:
        if not deliveries:
            raise ValidationError("At least one delivery is required")
        return await self.update_with_report(transfer_id, TransferChanges(deliveries=deliveries), actor)

    def _apply(self, doc: dict[str, Any], transfer_id: str, changes: TransferChanges, actor: Actor) -> _Outcome:
        transfers = doc.setdefault("transfers", [])
        index = next((i for i, raw in enumerate(transfers) if raw.get("id") == transfer_id), None)
        if index is None:
            raise NotFoundError("Transfer not found", details={"transferId": transfer_id})

        before = Transfer.model_validate(transfers[index])
        after = before.model_copy(deep=True)
        outcome = _Outcome(before=before, after=after)
        now = now_iso()
        log: list[ActivityLogEntry] = []

        def entry(action: str, details: str | None = None) -> None:
            log.append(
                ActivityLogEntry(
                    timestamp=now,
                    action=action,
                    changed_by=actor.name,
                    changed_by_email=actor.email,
                    details=details,
                )
            )

        self._apply_edits(after, changes, outcome, entry)

        target = changes.status
        if target is not None and target is not after.status:
            ensure_transition(after.status, target)
            if target is TransferStatus.IN_TRANSIT:
                after.status = TransferStatus.IN_TRANSIT
                entry("Marked In Transit", f"{after.origin} → {after.destination}")
            elif target is TransferStatus.CANCELLED:
                after.status = TransferStatus.CANCELLED
                after.cancelled_at = now
                entry("Transfer Cancelled", f"Previous status: {before.status.value}")
            elif target is TransferStatus.DELIVERED and not changes.deliveries:
                outcome.applied = apply_deliveries(
                    after.items,
                    [Delivery(sku=i.sku, quantity=i.remaining) for i in after.items if i.remaining > 0],
                )

        if changes.deliveries:
            if after.status not in (TransferStatus.IN_TRANSIT, TransferStatus.PARTIAL):
                raise ValidationError(
                    f"Deliveries can only be logged for transfers in transit, not {after.status.value}",
                    details={"status": after.status.value},
                )
            outcome.applied = apply_deliveries(after.items, changes.deliveries)

        if outcome.applied:
            after.status = derive_transfer_status(after.items, after.status)
            entry("Delivery Logged", _describe_deliveries(outcome.applied))
            if after.status is TransferStatus.DELIVERED:
                after.delivered_at = now

        if not log:
            return outcome

        after.updated_at = now
        after.activity_log.extend(log)
        transfers[index] = after.to_json()
        doc["lastUpdated"] = now
        logger.info(
            "transfer.updated",
            transfer_id=transfer_id,
            status_before=before.status.value,
            status_after=after.status.value,
            edited=outcome.edited,
            delivered=outcome.applied or None,
        )
        return outcome

    def _apply_edits(self, transfer: Transfer, changes: TransferChanges, outcome: _Outcome, entry) -> None:
        edits: dict[str, Any] = {}
        for name in ("origin", "destination", "transfer_type", "carrier", "tracking_number", "eta", "notes"):
            value = getattr(changes, name)
            if value is None:
                continue
            if name in CLEARABLE_FIELDS:
                value = value.strip() or None
            if value != getattr(transfer, name):
                edits[name] = value
        if changes.items is not None:
            merged = merge_items(transfer.items, changes.items, changes.confirm_item_changes)
            if [i.to_json() for i in merged] != [i.to_json() for i in transfer.items]:
                edits["items"] = merged
        if not edits:
            return

        if transfer.status in TERMINAL_TRANSFER_STATUSES and set(edits) - {"notes", "carrier", "tracking_number", "eta"}:
            raise ValidationError(
                f"A {transfer.status.value} transfer can only have its notes or shipping details edited",
                details={"fields": sorted(edits)},
            )
        validate_route(edits.get("origin", transfer.origin), edits.get("destination", transfer.destination))

        for name, value in edits.items():
            setattr(transfer, name, value)
        if transfer.transfer_type.direction is None and transfer.status in (
            TransferStatus.IN_TRANSIT,
            TransferStatus.PARTIAL,
        ):
            logger.info("transfer.type_no_longer_projected", transfer_id=transfer.id)
        outcome.edited = sorted(edits)

        if set(edits) == {"notes"}:
            entry("Notes Updated", edits["notes"] or "(cleared)")
        elif set(edits) == {"eta"}:
            entry("Est. Delivery Updated", edits["eta"] or "(cleared)")
        else:
            entry("Transfer Updated", "Changed: " + ", ".join(outcome.edited))

    async def _check_stock(self, origin: str, items: list) -> None:
        """Compare the shipment against cached available stock at the origin."""
        available = await self.cache.location_stock(origin)
        if available is None:
            logger.warning("transfer.stock_check_skipped", origin=origin, reason="origin not in snapshot")
            return

        requested: dict[str, int] = {}
        for item in items:
            requested[item.sku] = requested.get(item.sku, 0) + item.quantity
        shortfalls = [
            {"sku": sku, "requested": qty, "available": available.get(sku, 0)}
            for sku, qty in requested.items()
            if available.get(sku, 0) < qty
        ]
        if not shortfalls:
            return
        if self.settings.transfer_strict_stock_check:
            raise InsufficientStockError(f"Insufficient stock at {origin}", details={"shortfalls": shortfalls})
        logger.warning("transfer.insufficient_stock", origin=origin, shortfalls=shortfalls)

    # ── Side effects ───────────────────────────────────────────────────

    async def _sync_projection(self, outcome: _Outcome) -> None:
        before, after = outcome.before, outcome.after
        if not (before.is_projected or after.is_projected):
            return

        if after.status is TransferStatus.CANCELLED:
            await self.incoming.remove_transfer(before.destination, before.id)
        elif not before.is_projected:
            await self.incoming.add_transfer(after)
        elif set(outcome.edited) & set(PROJECTION_FIELDS):
            await self.incoming.resync_transfer(before, after)
        elif outcome.applied:
            await self.incoming.subtract(
                before.destination,
                before.transfer_type,
                list(outcome.applied.items()),
                before.id,
            )

    async def _move_stock(self, outcome: _Outcome) -> dict[str, Any] | None:
        if self.stock_sync is None:
            return None
        before, after = outcome.before, outcome.after
        if before.status is TransferStatus.DRAFT and after.status is TransferStatus.IN_TRANSIT:
            return await self.stock_sync.mark_in_transit(after)
        if outcome.applied and after.status is not TransferStatus.CANCELLED:
            return await self.stock_sync.log_delivery(after, outcome.applied)
        return None

    def _notify(self, outcome: _Outcome, actor: Actor, changes: TransferChanges) -> None:
        before, after = outcome.before, outcome.after
        if before.status is after.status:
            return

        base = {
            "transferId": after.id,
            "origin": after.origin,
            "destination": after.destination,
            "shipmentType": after.transfer_type.value,
            "carrier": after.carrier,
            "trackingNumber": after.tracking_number,
            "eta": after.eta,
            "actor": actor.name,
        }
        if after.status is TransferStatus.IN_TRANSIT:
            self.dispatcher.notify(
                TRANSFER_IN_TRANSIT,
                {**base, "items": [{"sku": i.sku, "quantity": i.quantity} for i in after.items]},
            )
        elif after.status in (TransferStatus.PARTIAL, TransferStatus.DELIVERED) and (
            before.status is not TransferStatus.DELIVERED
        ):
            self.dispatcher.notify(
                TRANSFER_DELIVERY,
                {
                    **base,
                    "status": after.status.value,
                    "items": [
                        {
                            "sku": i.sku,
                            "totalQty": i.quantity,
                            "delivered": i.received_quantity,
                            "pending": i.remaining,
                        }
                        for i in after.items
                    ],
                },
            )
        elif after.status is TransferStatus.CANCELLED:
            self.dispatcher.notify(
                TRANSFER_CANCELLED,
                {
                    **base,
                    "items": [{"sku": i.sku, "quantity": i.quantity} for i in after.items],
                    "restockedItems": [r.model_dump() for r in changes.restocked_items or []],
                },
            )
