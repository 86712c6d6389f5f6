"""
Commerce platform integration package.

The dashboard's stock figures come from Shopify:
  - locations, `inventoried` products and per-location levels (read)
  - physical-count corrections as on-hand quantities (write)

Usage:
    from integrations import ShopifyClient, build_inventory_snapshot

    client = ShopifyClient.from_settings(settings)
    levels = await client.fetch_detailed_inventory_levels(location_id)
"""

from integrations.shopify import (
    SET_QUANTITIES_BATCH_SIZE,
    ShopifyClient,
    build_inventory_snapshot,
    next_page_url,
)

__all__ = [
    "SET_QUANTITIES_BATCH_SIZE",
    "ShopifyClient",
    "build_inventory_snapshot",
    "next_page_url",
]
