"""
Test Configuration — fixtures for a throwaway document store, a recording
notifier, ledger services and an API client with dependency overrides.

Every test gets its own LocalFileStore under tmp_path, so ledgers and the
inventory cache start empty and nothing leaks between tests.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from alerts.dispatcher import NotificationDispatcher, NotificationEvent, Notifier
from api.deps import get_current_user, get_dispatcher, get_store, require_writer
from api.main import app
from core.config import get_settings
from inventory.cache import InventoryCacheService
from store.local import LocalFileStore
from supply_chain.incoming import IncomingInventoryService
from supply_chain.models import Actor
from supply_chain.production_orders import ProductionOrderService
from supply_chain.transfers import TransferService


class RecordingNotifier(Notifier):
    """Keeps every delivered event; optionally fails for chosen kinds."""

    def __init__(self, fail_kinds: set[str] | None = None):
        self.events: list[NotificationEvent] = []
        self.fail_kinds = fail_kinds or set()

    async def send(self, event: NotificationEvent) -> None:
        if event.kind in self.fail_kinds:
            raise RuntimeError(f"{event.kind} channel down")
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]


@pytest.fixture
def settings(monkeypatch, tmp_path):
    """Local settings with instant store retries and a per-test store directory."""
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("STORE_BACKEND", "local")
    monkeypatch.setenv("STORE_LOCAL_DIR", str(tmp_path / "store"))
    monkeypatch.setenv("STORE_LOAD_RETRY_SECONDS", "0")
    monkeypatch.setenv("TRANSFER_STRICT_STOCK_CHECK", "true")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def store(tmp_path):
    return LocalFileStore(tmp_path / "store")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier):
    return NotificationDispatcher(notifier)


@pytest.fixture
def actor():
    return Actor(name="Test Planner", email="planner@example.com")


@pytest.fixture
def cache(store, settings):
    return InventoryCacheService(store, settings)


@pytest.fixture
def incoming(cache):
    return IncomingInventoryService(cache)


@pytest.fixture
def transfer_service(store, settings, dispatcher, incoming, cache):
    return TransferService(store, settings, dispatcher, incoming=incoming, cache=cache)


@pytest.fixture
def order_service(store, settings, dispatcher):
    return ProductionOrderService(store, settings, dispatcher)


@pytest.fixture
def seed_stock(cache):
    """Write a snapshot with available stock per location into the cache envelope."""

    async def _seed(stock: dict[str, dict[str, int]]) -> None:
        await cache.update(
            {
                "inventory": {
                    "locations": sorted(stock),
                    "locationDetails": {
                        location: [{"sku": sku, "available": qty} for sku, qty in rows.items()]
                        for location, rows in stock.items()
                    },
                }
            },
            refreshed_by="test",
        )

    return _seed


@pytest.fixture
def mock_user():
    """Mock authenticated user with the write role."""
    return {
        "sub": "user-1",
        "email": "planner@example.com",
        "name": "Test Planner",
    }


@pytest.fixture
async def client(store, dispatcher, mock_user, settings):
    """Create an async test client with dependency overrides."""

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[require_writer] = override_get_current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def notifier_factory():
    """The recording notifier class, for tests that need their own instance."""
    return RecordingNotifier
