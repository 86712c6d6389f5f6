"""
Durable Store — Abstract Base Class

One JSON document per logical dataset (transfers ledger, production orders,
inventory cache envelope, SKU lists). Backends implement load/save only; there
are no transactions, so every save can carry the version token returned by the
preceding load and is refused when the stored document moved in between.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger()

# ── Document keys ─────────────────────────────────────────────────────────

INVENTORY_CACHE = "inventory-cache"
TRANSFERS = "transfers"
PRODUCTION_ORDERS = "production-orders"
HIDDEN_SKUS = "hidden-skus"
PHASE_OUT_SKUS = "phase-out-skus"
SKU_COMMENTS = "sku-comments"
MC_DATA = "mc-data"
# Per-location documents; format with a location slug.
WAREHOUSE_DRAFTS = "warehouse-drafts-{location}"
WAREHOUSE_LOGS = "warehouse-logs-{location}"

# Pass as expected_version to require that no document exists yet.
ABSENT = "absent"


class StoreError(Exception):
    """Base class for backend failures."""


class StoreReadError(StoreError):
    """A document exists (or might) but could not be fetched or decoded."""


class StoreWriteError(StoreError):
    pass


class VersionConflictError(StoreError):
    def __init__(self, key: str, expected: str, actual: str):
        super().__init__(f"Document '{key}' changed: expected version {expected}, found {actual}")
        self.key = key
        self.expected = expected
        self.actual = actual


@dataclass
class StoredDocument:
    """A loaded document and the version token to save it back with."""

    data: dict[str, Any]
    version: str


class DurableStore(ABC):
    """
    Key-value blob store holding JSON documents.

    Lifecycle:
        1. load(key)                          — None when the document does not exist
        2. save(key, data, expected_version)  — conditional when a version is given
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        ...

    @abstractmethod
    async def load(self, key: str) -> StoredDocument | None:
        """Fetch a document. Raises StoreReadError on I/O or decode failure."""
        ...

    @abstractmethod
    async def save(self, key: str, data: dict[str, Any], expected_version: str | None = None) -> str:
        """
        Persist a whole document and return its new version.

        With `expected_version` set, raises VersionConflictError when the stored
        version differs (ABSENT: when any document exists).
        """
        ...


def build_store(settings) -> DurableStore:
    """Factory: return the backend selected by `store_backend`."""
    backend = settings.store_backend.strip().lower()
    if backend == "local":
        from store.local import LocalFileStore

        return LocalFileStore(settings.store_local_dir)
    if backend == "drive":
        from store.drive import GoogleDriveStore

        return GoogleDriveStore(
            service_account_email=settings.google_service_account_email,
            private_key=settings.google_service_account_private_key,
            shared_drive_name=settings.drive_shared_drive_name,
            folder_name=settings.drive_folder_name,
        )
    raise ValueError(f"Unknown store backend: {settings.store_backend}")
