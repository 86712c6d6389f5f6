"""
Cron Router — scheduler-triggered jobs, authenticated with a shared secret
instead of a user session.
"""

import hmac

import structlog
from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials

from alerts.dispatcher import NotificationDispatcher
from api.deps import get_dispatcher, get_shopify_client, get_store, security
from core.config import get_settings
from core.errors import AppError, AuthError
from integrations.shopify import ShopifyClient
from store import DurableStore
from workers.refresh import CRON_REFRESHED_BY, refresh_inventory

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/cron", tags=["cron"])


def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    secret = get_settings().cron_secret
    if not secret:
        logger.error("cron.secret_missing")
        raise AppError("CRON_SECRET not configured")
    supplied = credentials.credentials if credentials else ""
    if not hmac.compare_digest(supplied.encode(), secret.encode()):
        logger.warning("cron.unauthorized")
        raise AuthError("Unauthorized")


@router.get("/refresh", dependencies=[Depends(verify_cron_secret)])
async def scheduled_refresh(
    store: DurableStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    client: ShopifyClient = Depends(get_shopify_client),
):
    """Hourly refresh of the inventory cache."""
    summary = await refresh_inventory(store, get_settings(), dispatcher, CRON_REFRESHED_BY, client=client)
    return {"success": True, "message": "Inventory cache refreshed", **summary}
