"""
Inbound Inventory API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from alerts.dispatcher import LogNotifier, NotificationDispatcher
from alerts.slack import SlackNotifier
from api.errors import register_exception_handlers
from core.config import get_settings
from core.logging import configure_logging
from store import build_store

settings = get_settings()
logger = structlog.get_logger()


def build_dispatcher() -> NotificationDispatcher:
    notifier = SlackNotifier.from_settings(settings) if settings.slack_bot_token else LogNotifier()
    return NotificationDispatcher(notifier)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    configure_logging()
    app.state.store = build_store(settings)
    await app.state.dispatcher.start()
    logger.info(
        "Inbound Inventory API starting up",
        version=settings.app_version,
        store=app.state.store.backend_name,
    )
    yield
    await app.state.dispatcher.stop()
    logger.info("Inbound Inventory API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Inventory dashboard backend: transfers, incoming projection and production orders",
    lifespan=lifespan,
)
# Available before startup so requests served without a lifespan still queue events.
app.state.dispatcher = build_dispatcher()

register_exception_handlers(app)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import (
    cron,
    incoming,
    inventory,
    mc_data,
    production_orders,
    sku_lists,
    transfers,
    warehouse,
)

app.include_router(transfers.router)
app.include_router(incoming.router)
app.include_router(production_orders.router)
app.include_router(inventory.router)
app.include_router(cron.router)
app.include_router(sku_lists.hidden_router)
app.include_router(sku_lists.phase_out_router)
app.include_router(sku_lists.comments_router)
app.include_router(warehouse.router)
app.include_router(mc_data.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for Cloud Run / load balancers."""
    return {"status": "healthy", "version": settings.app_version}
