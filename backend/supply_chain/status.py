"""
Lifecycle status rules for transfers and production orders.

Status is never set by hand after a receipt: every mutation site recomputes it
from the received quantities with the functions below.

Transfer state machine:
    draft ──► in_transit ──► partial ◄──► delivered
      │            │            │
      └────────────┴────────────┴──► cancelled
    delivered and cancelled are terminal.
"""

from collections.abc import Iterable

from core.errors import InvalidTransitionError
from supply_chain.models import LineItem, OrderStatus, TransferStatus

TERMINAL_TRANSFER_STATUSES = frozenset({TransferStatus.DELIVERED, TransferStatus.CANCELLED})

_TRANSFER_EDGES: dict[TransferStatus, frozenset[TransferStatus]] = {
    TransferStatus.DRAFT: frozenset({TransferStatus.IN_TRANSIT, TransferStatus.CANCELLED}),
    TransferStatus.IN_TRANSIT: frozenset(
        {TransferStatus.PARTIAL, TransferStatus.DELIVERED, TransferStatus.CANCELLED}
    ),
    TransferStatus.PARTIAL: frozenset({TransferStatus.DELIVERED, TransferStatus.CANCELLED}),
    TransferStatus.DELIVERED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
}


def can_transition(current: TransferStatus, target: TransferStatus) -> bool:
    """True when `current -> target` is an edge of the transfer state machine."""
    return target in _TRANSFER_EDGES[TransferStatus(current)]


def ensure_transition(current: TransferStatus, target: TransferStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move a transfer from {TransferStatus(current).value} to {TransferStatus(target).value}",
            details={"from": TransferStatus(current).value, "to": TransferStatus(target).value},
        )


def _received_fraction(items: Iterable[LineItem]) -> tuple[bool, bool]:
    """(any received, all fully received)."""
    items = list(items)
    any_received = any(item.received_quantity > 0 for item in items)
    all_received = bool(items) and all(item.received_quantity >= item.quantity for item in items)
    return any_received, all_received


def derive_transfer_status(items: Iterable[LineItem], current: TransferStatus) -> TransferStatus:
    """
    Status implied by received quantities.

    Draft and cancelled transfers keep their status; a shipped transfer is
    delivered once every line is fully received, partial once any unit has
    arrived, and otherwise still in transit.
    """
    current = TransferStatus(current)
    if current in (TransferStatus.DRAFT, TransferStatus.CANCELLED):
        return current
    any_received, all_received = _received_fraction(items)
    if all_received:
        return TransferStatus.DELIVERED
    if any_received:
        return TransferStatus.PARTIAL
    return TransferStatus.IN_TRANSIT


def derive_order_status(items: Iterable[LineItem], current: OrderStatus) -> OrderStatus:
    """Production orders: completed when all received, partial when some, else unchanged."""
    current = OrderStatus(current)
    if current is OrderStatus.CANCELLED:
        return current
    any_received, all_received = _received_fraction(items)
    if all_received:
        return OrderStatus.COMPLETED
    if any_received:
        return OrderStatus.PARTIAL
    return current
