"""
Notification Dispatcher — out-of-band delivery of lifecycle events.

Ledger operations call `notify()` after their change is committed. The event
is queued and the call returns at once; a single worker task delivers events in
order through a Notifier. A failing notifier is logged and skipped, it can
never undo or block the change that produced the event.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import structlog

from supply_chain.models import now_iso

logger = structlog.get_logger()

TRANSFER_IN_TRANSIT = "transfer_in_transit"
TRANSFER_DELIVERY = "transfer_delivery"
TRANSFER_CANCELLED = "transfer_cancelled"
PRODUCTION_ORDER_CREATED = "production_order_created"
PRODUCTION_ORDER_DELIVERY = "production_order_delivery"
PRODUCTION_ORDER_CANCELLED = "production_order_cancelled"
LOW_STOCK = "low_stock"

EVENT_KINDS = frozenset(
    {
        TRANSFER_IN_TRANSIT,
        TRANSFER_DELIVERY,
        TRANSFER_CANCELLED,
        PRODUCTION_ORDER_CREATED,
        PRODUCTION_ORDER_DELIVERY,
        PRODUCTION_ORDER_CANCELLED,
        LOW_STOCK,
    }
)


@dataclass
class NotificationEvent:
    kind: str
    payload: dict[str, Any]
    queued_at: str = field(default_factory=now_iso)


class Notifier(ABC):
    """Delivers one event to an external channel. May raise; the dispatcher contains it."""

    @abstractmethod
    async def send(self, event: NotificationEvent) -> None:
        ...


class LogNotifier(Notifier):
    """Fallback when no chat integration is configured."""

    async def send(self, event: NotificationEvent) -> None:
        logger.info("notification.logged", kind=event.kind, payload=event.payload)


class NotificationDispatcher:
    def __init__(self, notifier: Notifier, maxsize: int = 1000):
        self.notifier = notifier
        self._queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None
        self.delivered = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def notify(self, kind: str, payload: dict[str, Any]) -> None:
        """Queue an event. Never raises."""
        if kind not in EVENT_KINDS:
            logger.warning("notification.unknown_kind", kind=kind)
            return
        try:
            self._queue.put_nowait(NotificationEvent(kind=kind, payload=payload))
        except asyncio.QueueFull:
            self.failed += 1
            logger.error("notification.dropped", kind=kind, reason="queue full")

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            await self.notifier.send(event)
            self.delivered += 1
        except Exception as exc:
            self.failed += 1
            logger.error("notification.failed", kind=event.kind, error=str(exc), exc_info=True)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
            logger.info("notification.dispatcher_started", notifier=type(self.notifier).__name__)

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        if not self.running:
            while not self._queue.empty():
                event = self._queue.get_nowait()
                await self._deliver(event)
                self._queue.task_done()
            return
        await self._queue.join()

    async def stop(self) -> None:
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
            logger.info("notification.dispatcher_stopped", delivered=self.delivered, failed=self.failed)
