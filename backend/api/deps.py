"""
Inbound Inventory API Dependencies

Dependency injection for the durable store, the notification dispatcher, the
signed-in user and the ledger services built on top of them.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from alerts.dispatcher import NotificationDispatcher
from core.config import Settings, get_settings
from core.errors import AuthError, ForbiddenError
from core.security import can_write, decode_access_token, is_allowed
from integrations.shopify import ShopifyClient
from inventory.cache import InventoryCacheService
from retail.master_cartons import MasterCartonService
from retail.sku_comments import SkuCommentService
from retail.sku_lists import SkuListService
from retail.warehouse import WarehouseCountService
from store import DurableStore, build_store
from supply_chain.incoming import IncomingInventoryService
from supply_chain.models import Actor
from supply_chain.production_orders import ProductionOrderService
from supply_chain.stock_moves import ShopifyStockSync
from supply_chain.transfers import TransferService

settings = get_settings()
security = HTTPBearer(auto_error=False)

DEV_USER = {"sub": "dev-user", "email": "dev@localhost", "name": "Dev User"}


def get_store(request: Request) -> DurableStore:
    """The process-wide store created in the lifespan (built on demand otherwise)."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        store = build_store(get_settings())
        request.app.state.store = store
    return store


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode the session JWT and check the allowlist. Bypassed in debug mode."""
    if settings.debug:
        return DEV_USER

    if credentials is None:
        raise AuthError("Unauthorized")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthError("Invalid or expired token")
    if not is_allowed(payload.get("email")):
        raise ForbiddenError("Access denied. Your email is not on the allowlist.")
    return payload


async def require_writer(user: dict = Depends(get_current_user)) -> dict:
    """Mutating endpoints: the user must also hold the write role."""
    if settings.debug:
        return user
    if not can_write(user.get("email")):
        raise ForbiddenError("Read-only access. You do not have permission to make changes.")
    return user


def actor_from(user: dict) -> Actor:
    return Actor(name=user.get("name") or "Unknown", email=user.get("email") or "unknown@example.com")


# ── Services ───────────────────────────────────────────────────────────────


def get_cache_service(store: DurableStore = Depends(get_store)) -> InventoryCacheService:
    return InventoryCacheService(store, get_settings())


def get_incoming_service(
    cache: InventoryCacheService = Depends(get_cache_service),
) -> IncomingInventoryService:
    return IncomingInventoryService(cache)


def get_transfer_service(
    store: DurableStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    cache: InventoryCacheService = Depends(get_cache_service),
) -> TransferService:
    runtime_settings: Settings = get_settings()
    stock_sync = None
    if runtime_settings.shopify_sync_transfers and (
        runtime_settings.shopify_shop_domain and runtime_settings.shopify_access_token
    ):
        stock_sync = ShopifyStockSync(cache, lambda: ShopifyClient.from_settings(runtime_settings))
    return TransferService(
        store,
        runtime_settings,
        dispatcher,
        incoming=IncomingInventoryService(cache),
        cache=cache,
        stock_sync=stock_sync,
    )


def get_production_order_service(
    store: DurableStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ProductionOrderService:
    return ProductionOrderService(store, get_settings(), dispatcher)


def get_hidden_skus(store: DurableStore = Depends(get_store)) -> SkuListService:
    return SkuListService.hidden(store, get_settings())


def get_phase_out_skus(store: DurableStore = Depends(get_store)) -> SkuListService:
    return SkuListService.phase_out(store, get_settings())


def get_sku_comments(store: DurableStore = Depends(get_store)) -> SkuCommentService:
    return SkuCommentService(store, get_settings())


def get_warehouse_counts(store: DurableStore = Depends(get_store)) -> WarehouseCountService:
    return WarehouseCountService(store, get_settings())


def get_master_cartons(store: DurableStore = Depends(get_store)) -> MasterCartonService:
    return MasterCartonService(store, get_settings())


def get_shopify_client() -> ShopifyClient:
    return ShopifyClient.from_settings(get_settings())
