"""
Ledger record models — transfers, production orders and their line items.

Records are persisted as camelCase JSON (the shape the dashboard has always
read), so every model aliases its snake_case fields. Unknown keys found in
stored documents are kept and written back unchanged.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TransferType(str, Enum):
    AIR_EXPRESS = "Air Express"
    AIR_SLOW = "Air Slow"
    SEA = "Sea"
    IMMEDIATE = "Immediate"

    @property
    def direction(self) -> str | None:
        """Projection bucket for this type: "air", "sea" or None (never projected)."""
        if self in (TransferType.AIR_EXPRESS, TransferType.AIR_SLOW):
            return "air"
        if self is TransferType.SEA:
            return "sea"
        return None


class TransferStatus(str, Enum):
    DRAFT = "draft"
    IN_TRANSIT = "in_transit"
    PARTIAL = "partial"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderStatus(str, Enum):
    IN_PRODUCTION = "in_production"
    PARTIAL = "partial"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LineItem(CamelModel):
    sku: str
    quantity: int
    received_quantity: int = 0
    master_cartons: int | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.quantity - self.received_quantity)


class TransferItem(LineItem):
    pallet: str | None = None  # sea shipments: "Pallet 1", "Pallet 2", ...

    @property
    def key(self) -> tuple[str, str]:
        return (self.sku.upper(), self.pallet or "")


class ActivityLogEntry(CamelModel):
    timestamp: str
    action: str
    changed_by: str
    changed_by_email: str
    details: str | None = None


class Transfer(CamelModel):
    id: str
    origin: str
    destination: str
    transfer_type: TransferType
    items: list[TransferItem]
    carrier: str | None = None
    tracking_number: str | None = None
    eta: str | None = None
    notes: str = ""
    status: TransferStatus = TransferStatus.DRAFT
    created_by: str
    created_by_email: str
    created_at: str
    updated_at: str
    delivered_at: str | None = None
    cancelled_at: str | None = None
    activity_log: list[ActivityLogEntry] = Field(default_factory=list)

    @property
    def is_projected(self) -> bool:
        """Whether this transfer currently contributes to the incoming projection."""
        return (
            self.status in (TransferStatus.IN_TRANSIT, TransferStatus.PARTIAL)
            and self.transfer_type.direction is not None
        )


class ProductionOrderItem(LineItem):
    @property
    def key(self) -> tuple[str, str]:
        return (self.sku.upper(), "")


class ProductionOrder(CamelModel):
    id: str
    items: list[ProductionOrderItem]
    notes: str = ""
    vendor: str | None = None
    eta: str | None = None
    po_number: str | None = None
    is_non_sku: bool = False
    status: OrderStatus = OrderStatus.IN_PRODUCTION
    created_by: str
    created_by_email: str
    created_at: str
    updated_at: str
    completed_at: str | None = None
    cancelled_at: str | None = None
    activity_log: list[ActivityLogEntry] = Field(default_factory=list)


class Actor(BaseModel):
    """The signed-in user a change is attributed to."""

    name: str = "Unknown"
    email: str = "unknown@example.com"


class Delivery(BaseModel):
    """A received quantity for one SKU (a delta, not an absolute)."""

    sku: str
    quantity: int


def now_iso() -> str:
    """UTC timestamp in the millisecond `...Z` form stored on every record."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
