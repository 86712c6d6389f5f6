"""
Incoming Inventory Projection — what is on its way to each location.

    projection[destination][sku] = {
        "inboundAir": int, "inboundSea": int,
        "airTransfers": [detail, ...], "seaTransfers": [detail, ...],
    }
    detail = {transferId, quantity, note, createdAt, expectedArrivalAt}

Two ways to produce it, which must always agree:
  1. Incremental: add / subtract / remove as single transfers change status.
  2. Rebuild: recompute from every in-flight Air/Sea transfer in the ledger.

Totals are always recomputed from the detail lists, zero entries are pruned,
details are ordered by (createdAt, transferId) and keys are kept sorted, so
both paths serialize to identical JSON for the same ledger state.
"""

from collections.abc import Iterable
from typing import Any

import structlog

from core.config import Settings
from inventory.cache import InventoryCacheService
from supply_chain.models import Transfer, TransferType

logger = structlog.get_logger()

Projection = dict[str, dict[str, dict[str, Any]]]

_FIELDS = {
    "air": ("inboundAir", "airTransfers"),
    "sea": ("inboundSea", "seaTransfers"),
}


def direction_of(shipment_type: TransferType | str) -> str | None:
    """Map a transfer type (or an explicit "air"/"sea") onto a projection bucket."""
    if shipment_type in _FIELDS:
        return shipment_type
    return TransferType(shipment_type).direction


def _empty_entry() -> dict[str, Any]:
    return {"inboundAir": 0, "inboundSea": 0, "airTransfers": [], "seaTransfers": []}


def _aggregate(items: Iterable[tuple[str, int]]) -> dict[str, int]:
    """Sum quantities per SKU; lines for the same SKU on several pallets become one."""
    totals: dict[str, int] = {}
    for sku, quantity in items:
        if quantity > 0:
            totals[sku] = totals.get(sku, 0) + quantity
    return totals


def _detail_order(detail: dict[str, Any]) -> tuple[str, str]:
    return (detail.get("createdAt") or "", detail.get("transferId") or "")


def _settle(projection: Projection, destination: str, sku: str) -> None:
    """Recompute totals from details and prune the entry when nothing is inbound."""
    entry = projection.get(destination, {}).get(sku)
    if entry is None:
        return
    for total_field, list_field in _FIELDS.values():
        details = [d for d in entry.get(list_field, []) if d.get("quantity", 0) > 0]
        details.sort(key=_detail_order)
        entry[list_field] = details
        entry[total_field] = sum(d["quantity"] for d in details)

    if entry["inboundAir"] == 0 and entry["inboundSea"] == 0:
        del projection[destination][sku]
    if destination in projection and not projection[destination]:
        del projection[destination]


def canonicalize(projection: Projection) -> Projection:
    """Re-insert destinations and SKUs in sorted order (in place) and return it."""
    ordered = {
        destination: {sku: projection[destination][sku] for sku in sorted(projection[destination])}
        for destination in sorted(projection)
    }
    projection.clear()
    projection.update(ordered)
    return projection


def add_to_incoming(
    projection: Projection,
    destination: str,
    shipment_type: TransferType | str,
    items: Iterable[tuple[str, int]],
    transfer_id: str,
    created_at: str,
    note: str | None = None,
    expected_arrival_at: str | None = None,
) -> int:
    """Add inbound quantities for one transfer; returns units added."""
    direction = direction_of(shipment_type)
    if direction is None:
        return 0
    _, list_field = _FIELDS[direction]

    added = 0
    for sku, quantity in _aggregate(items).items():
        entry = projection.setdefault(destination, {}).setdefault(sku, _empty_entry())
        details = entry.setdefault(list_field, [])
        existing = next((d for d in details if d.get("transferId") == transfer_id), None)
        if existing is not None:
            existing["quantity"] += quantity
        else:
            details.append(
                {
                    "transferId": transfer_id,
                    "quantity": quantity,
                    "note": note or None,
                    "createdAt": created_at,
                    "expectedArrivalAt": expected_arrival_at,
                }
            )
        added += quantity
        _settle(projection, destination, sku)

    canonicalize(projection)
    return added


def subtract_from_incoming(
    projection: Projection,
    destination: str,
    shipment_type: TransferType | str,
    items: Iterable[tuple[str, int]],
    transfer_id: str,
) -> int:
    """
    Remove received quantities of one transfer; returns units actually removed.

    A destination, SKU or detail that is already gone is skipped and logged.
    """
    direction = direction_of(shipment_type)
    if direction is None:
        return 0
    _, list_field = _FIELDS[direction]

    removed = 0
    for sku, quantity in _aggregate(items).items():
        entry = projection.get(destination, {}).get(sku)
        detail = None
        if entry is not None:
            detail = next((d for d in entry.get(list_field, []) if d.get("transferId") == transfer_id), None)
        if detail is None:
            logger.info(
                "incoming.subtract_missing",
                destination=destination,
                sku=sku,
                transfer_id=transfer_id,
            )
            continue

        taken = min(quantity, detail["quantity"])
        detail["quantity"] -= taken
        removed += taken
        _settle(projection, destination, sku)

    canonicalize(projection)
    return removed


def remove_transfer_from_incoming(projection: Projection, destination: str, transfer_id: str) -> int:
    """Drop every detail of `transfer_id` under `destination` (air and sea); returns units removed."""
    removed = 0
    for sku in list(projection.get(destination, {})):
        entry = projection[destination][sku]
        for _, list_field in _FIELDS.values():
            details = entry.get(list_field, [])
            removed += sum(d.get("quantity", 0) for d in details if d.get("transferId") == transfer_id)
            entry[list_field] = [d for d in details if d.get("transferId") != transfer_id]
        _settle(projection, destination, sku)
    return removed


def remove_sku_from_incoming(projection: Projection, sku: str) -> list[str]:
    """Admin cleanup: delete `sku` under every destination; returns the destinations touched."""
    touched = []
    for destination in list(projection):
        if sku in projection[destination]:
            entry = projection[destination].pop(sku)
            logger.info(
                "incoming.sku_cleared",
                destination=destination,
                sku=sku,
                inbound_air=entry.get("inboundAir", 0),
                inbound_sea=entry.get("inboundSea", 0),
            )
            touched.append(destination)
            if not projection[destination]:
                del projection[destination]
    return touched


def remaining_items(transfer: Transfer) -> list[tuple[str, int]]:
    return [(item.sku, item.remaining) for item in transfer.items if item.remaining > 0]


def add_transfer(projection: Projection, transfer: Transfer) -> int:
    """Project a transfer's remaining (unreceived) units at its destination."""
    return add_to_incoming(
        projection,
        transfer.destination,
        transfer.transfer_type,
        remaining_items(transfer),
        transfer.id,
        transfer.created_at,
        note=transfer.notes,
        expected_arrival_at=transfer.eta,
    )


def build_incoming_from_transfers(transfers: Iterable[Transfer]) -> tuple[Projection, dict[str, int]]:
    """
    Recompute the projection from scratch.

    Only in-transit or partially received Air/Sea transfers contribute, each
    with quantity minus received per line.
    """
    projection: Projection = {}
    active = with_eta = 0
    for transfer in transfers:
        if not transfer.is_projected:
            continue
        if add_transfer(projection, transfer) > 0:
            active += 1
            if transfer.eta:
                with_eta += 1

    stats = {
        "activeTransfers": active,
        "transfersWithEta": with_eta,
        "destinations": len(projection),
        "totalSkus": sum(len(skus) for skus in projection.values()),
    }
    return canonicalize(projection), stats


def check_invariants(projection: Projection) -> list[str]:
    """Describe every entry whose totals disagree with its details or that should have been pruned."""
    problems = []
    for destination, skus in projection.items():
        if not skus:
            problems.append(f"{destination}: empty destination")
        for sku, entry in skus.items():
            for total_field, list_field in _FIELDS.values():
                expected = sum(d.get("quantity", 0) for d in entry.get(list_field, []))
                if entry.get(total_field, 0) != expected:
                    problems.append(f"{destination}/{sku}: {total_field}={entry.get(total_field)} != {expected}")
                if any(d.get("quantity", 0) <= 0 for d in entry.get(list_field, [])):
                    problems.append(f"{destination}/{sku}: non-positive detail in {list_field}")
            if entry.get("inboundAir", 0) == 0 and entry.get("inboundSea", 0) == 0:
                problems.append(f"{destination}/{sku}: zero entry not pruned")
    return problems


class IncomingInventoryService:
    """
    Applies projection changes to the cached envelope.

    Each call is one read-merge-write of the cache document, so changes for
    different destinations made concurrently are merged, not overwritten.
    """

    def __init__(self, cache: InventoryCacheService):
        self.cache = cache

    @classmethod
    def from_store(cls, store, settings: Settings) -> "IncomingInventoryService":
        return cls(InventoryCacheService(store, settings))

    async def get(self) -> Projection:
        return await self.cache.get_incoming()

    async def add(
        self,
        destination: str,
        shipment_type: TransferType | str,
        items: list[tuple[str, int]],
        transfer_id: str,
        created_at: str,
        note: str | None = None,
        expected_arrival_at: str | None = None,
    ) -> int:
        added = await self.cache.mutate_incoming(
            lambda p: add_to_incoming(
                p, destination, shipment_type, items, transfer_id, created_at, note, expected_arrival_at
            )
        )
        logger.info("incoming.added", destination=destination, transfer_id=transfer_id, units=added)
        return added

    async def subtract(
        self,
        destination: str,
        shipment_type: TransferType | str,
        items: list[tuple[str, int]],
        transfer_id: str,
    ) -> int:
        removed = await self.cache.mutate_incoming(
            lambda p: subtract_from_incoming(p, destination, shipment_type, items, transfer_id)
        )
        logger.info("incoming.subtracted", destination=destination, transfer_id=transfer_id, units=removed)
        return removed

    async def remove_transfer(self, destination: str, transfer_id: str) -> int:
        removed = await self.cache.mutate_incoming(
            lambda p: remove_transfer_from_incoming(p, destination, transfer_id)
        )
        logger.info("incoming.transfer_removed", destination=destination, transfer_id=transfer_id, units=removed)
        return removed

    async def add_transfer(self, transfer: Transfer) -> int:
        return await self.add(
            transfer.destination,
            transfer.transfer_type,
            remaining_items(transfer),
            transfer.id,
            transfer.created_at,
            note=transfer.notes,
            expected_arrival_at=transfer.eta,
        )

    async def resync_transfer(self, before: Transfer, after: Transfer) -> None:
        """Replace a transfer's contribution after an edit, in a single write."""

        def apply(projection: Projection) -> None:
            remove_transfer_from_incoming(projection, before.destination, before.id)
            if after.is_projected:
                add_transfer(projection, after)
            canonicalize(projection)

        await self.cache.mutate_incoming(apply)
        logger.info("incoming.transfer_resynced", transfer_id=after.id, destination=after.destination)

    async def remove_sku(self, sku: str) -> list[str]:
        return await self.cache.mutate_incoming(lambda p: remove_sku_from_incoming(p, sku))

    async def rebuild(self, transfers: Iterable[Transfer]) -> tuple[Projection, dict[str, int]]:
        """Recompute in memory, then replace the projection with exactly one write."""
        projection, stats = build_incoming_from_transfers(transfers)
        await self.cache.set_incoming(projection)
        logger.info("incoming.rebuilt", **stats)
        return projection, stats
