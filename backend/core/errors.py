"""
Error taxonomy shared by the ledgers, the projection engine and the API layer.

Each error carries the HTTP status the API renders it with; the ledgers raise
these before touching persisted state.
"""

from typing import Any


class AppError(Exception):
    """Base class for errors that map onto a `{"error": ...}` response."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    """Bad input: missing SKU, non-positive quantity, origin == destination."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """Requested status change is not an edge of the lifecycle state machine."""


class InsufficientStockError(ValidationError):
    """Origin does not hold enough available stock to ship a transfer."""


class NotFoundError(AppError):
    status_code = 404


class AuthError(AppError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class ItemSetChangedWithReceiptsError(AppError):
    """Item lines were added or removed on a record that already has receipts."""

    status_code = 409


class ConcurrentModificationError(AppError):
    """A document kept moving underneath a read-merge-write cycle."""

    status_code = 409


class StoreUnavailableError(AppError):
    """The durable store could not be read after all retries."""

    status_code = 503


class IntegrationError(AppError):
    """An upstream platform (Shopify, Google) returned an unusable response."""

    status_code = 502


class NotificationError(Exception):
    """Raised by notifiers; always contained by the dispatcher."""
