"""
Durable document store.

Usage:
    from store import build_store, mutate_document

    store = build_store(get_settings())
    await mutate_document(store, TRANSFERS, lambda doc: doc.setdefault("transfers", []))
"""

from store.base import (
    ABSENT,
    HIDDEN_SKUS,
    INVENTORY_CACHE,
    MC_DATA,
    PHASE_OUT_SKUS,
    PRODUCTION_ORDERS,
    SKU_COMMENTS,
    TRANSFERS,
    WAREHOUSE_DRAFTS,
    WAREHOUSE_LOGS,
    DurableStore,
    StoredDocument,
    StoreError,
    StoreReadError,
    StoreWriteError,
    VersionConflictError,
    build_store,
)
from store.resilient import load_document, mutate_document, retry_options

__all__ = [
    "ABSENT",
    "HIDDEN_SKUS",
    "INVENTORY_CACHE",
    "MC_DATA",
    "PHASE_OUT_SKUS",
    "PRODUCTION_ORDERS",
    "SKU_COMMENTS",
    "TRANSFERS",
    "WAREHOUSE_DRAFTS",
    "WAREHOUSE_LOGS",
    "DurableStore",
    "StoredDocument",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "VersionConflictError",
    "build_store",
    "load_document",
    "mutate_document",
    "retry_options",
]
