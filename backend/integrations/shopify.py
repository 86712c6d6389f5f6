"""
Shopify Admin API Client

Reads locations, products and per-location inventory levels to build the
inventory snapshot. Writes physical-count corrections back as on-hand
quantities and moves stock between locations as transfers ship and arrive.
Only products tagged `inventoried` are part of the snapshot.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import Settings
from core.errors import IntegrationError

logger = structlog.get_logger()

INVENTORIED_TAG = "inventoried"
SET_QUANTITIES_BATCH_SIZE = 100

DETAILED_LEVELS_QUERY = """
query($locationId: ID!, $cursor: String) {
  location(id: $locationId) {
    inventoryLevels(first: 250, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      edges {
        node {
          item { id }
          quantities(names: ["available", "on_hand", "committed", "incoming"]) { name quantity }
        }
      }
    }
  }
}
"""

SET_QUANTITIES_MUTATION = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    userErrors { field message }
    inventoryAdjustmentGroup { id reason changes { name delta quantityAfterChange } }
  }
}
"""

ADJUST_QUANTITIES_MUTATION = """
mutation inventoryAdjustQuantities($input: InventoryAdjustQuantitiesInput!) {
  inventoryAdjustQuantities(input: $input) {
    userErrors { field message }
    inventoryAdjustmentGroup { id reason changes { name delta quantityAfterChange } }
  }
}
"""

_transport_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=1, max=10),
    reraise=True,
)


def next_page_url(link_header: str | None) -> str | None:
    """Extract the rel="next" URL from a REST pagination Link header."""
    if not link_header:
        return None
    for part in link_header.split(","):
        if 'rel="next"' in part and "<" in part and ">" in part:
            return part[part.index("<") + 1 : part.index(">")]
    return None


def _gid_tail(gid: str) -> str:
    return gid.rsplit("/", 1)[-1]


class ShopifyClient:
    """Client for the Shopify Admin REST and GraphQL APIs."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-10",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not shop_domain or not access_token:
            raise IntegrationError("Shopify credentials not configured")
        self.base_url = f"https://{shop_domain}/admin/api/{api_version}"
        self.graphql_url = f"{self.base_url}/graphql.json"
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "ShopifyClient":
        return cls(
            settings.shopify_shop_domain,
            settings.shopify_access_token,
            settings.shopify_api_version,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, headers=self.headers, timeout=30.0)

    async def _graphql(self, client: httpx.AsyncClient, query: str, variables: dict) -> dict:
        response = await client.post(self.graphql_url, json={"query": query, "variables": variables})
        response.raise_for_status()
        data = response.json()
        if data.get("errors"):
            raise IntegrationError(
                "Shopify GraphQL errors: " + ", ".join(e.get("message", "") for e in data["errors"]),
                details=data["errors"],
            )
        return data.get("data") or {}

    @_transport_retry
    async def fetch_locations(self) -> list[dict]:
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/locations.json")
            response.raise_for_status()
            return response.json().get("locations", [])

    @_transport_retry
    async def fetch_products(self, limit: int = 250) -> list[dict]:
        """All active products with variants, following Link-header pagination."""
        products: list[dict] = []
        url: str | None = f"{self.base_url}/products.json"
        params: dict[str, Any] | None = {"limit": limit, "status": "active"}
        async with self._client() as client:
            while url:
                response = await client.get(url, params=params)
                response.raise_for_status()
                products.extend(response.json().get("products", []))
                url = next_page_url(response.headers.get("link"))
                params = None  # the next-page URL already carries its page_info
        logger.info("shopify.products_fetched", count=len(products))
        return products

    @_transport_retry
    async def fetch_detailed_inventory_levels(self, location_id: str | int) -> list[dict]:
        """available / onHand / committed / incoming per inventory item at one location."""
        results: list[dict] = []
        cursor = None
        async with self._client() as client:
            while True:
                data = await self._graphql(
                    client,
                    DETAILED_LEVELS_QUERY,
                    {"locationId": f"gid://shopify/Location/{location_id}", "cursor": cursor},
                )
                levels = (data.get("location") or {}).get("inventoryLevels")
                if not levels:
                    break
                for edge in levels.get("edges", []):
                    node = edge["node"]
                    quantities = {q["name"]: q["quantity"] for q in node.get("quantities", [])}
                    results.append(
                        {
                            "inventoryItemId": _gid_tail(node["item"]["id"]),
                            "available": quantities.get("available", 0) or 0,
                            "onHand": quantities.get("on_hand", 0) or 0,
                            "committed": quantities.get("committed", 0) or 0,
                            "incoming": quantities.get("incoming", 0) or 0,
                        }
                    )
                page = levels.get("pageInfo") or {}
                if not page.get("hasNextPage"):
                    break
                cursor = page.get("endCursor")
        return results

    async def _mutate_in_batches(
        self,
        mutation: str,
        result_key: str,
        updates: list[dict],
        build_input: Callable[[list[dict]], dict],
    ) -> list[dict]:
        """
        Run `mutation` over `updates`, 100 items per call.

        A failed batch marks only its own items as failed; the result list has
        one entry per update in input order.
        """
        results: list[dict] = []
        async with self._client() as client:
            for start in range(0, len(updates), SET_QUANTITIES_BATCH_SIZE):
                batch = updates[start : start + SET_QUANTITIES_BATCH_SIZE]
                try:
                    data = await self._graphql(client, mutation, {"input": build_input(batch)})
                except (httpx.HTTPError, IntegrationError) as exc:
                    logger.error("shopify.batch_failed", mutation=result_key, batch_start=start, error=str(exc))
                    results.extend({"success": False, "sku": u["sku"], "error": str(exc)} for u in batch)
                    continue

                outcome = data.get(result_key) or {}
                user_errors = outcome.get("userErrors") or []
                if user_errors:
                    message = ", ".join(
                        f"{'.'.join(e['field'])}: {e['message']}" if e.get("field") else e["message"]
                        for e in user_errors
                    )
                    results.extend({"success": False, "sku": u["sku"], "error": message} for u in batch)
                    continue

                changes = (outcome.get("inventoryAdjustmentGroup") or {}).get("changes") or []
                for index, update in enumerate(batch):
                    change = changes[index] if index < len(changes) else {}
                    results.append(
                        {
                            "success": True,
                            "sku": update["sku"],
                            "delta": change.get("delta"),
                            "quantityAfterChange": change.get("quantityAfterChange"),
                        }
                    )
        return results

    async def set_on_hand_quantities(self, updates: list[dict], reason: str = "correction") -> list[dict]:
        """Set absolute on-hand quantities. Each update is {sku, inventoryItemId, locationId, quantity}."""
        reference = f"app://inventory-dashboard/physical-count/{datetime.now(timezone.utc).date().isoformat()}"

        def build_input(batch: list[dict]) -> dict:
            return {
                "name": "on_hand",
                "reason": reason,
                "referenceDocumentUri": reference,
                "ignoreCompareQuantity": True,
                "quantities": [
                    {
                        "inventoryItemId": f"gid://shopify/InventoryItem/{u['inventoryItemId']}",
                        "locationId": f"gid://shopify/Location/{u['locationId']}",
                        "quantity": u["quantity"],
                    }
                    for u in batch
                ],
            }

        return await self._mutate_in_batches(SET_QUANTITIES_MUTATION, "inventorySetQuantities", updates, build_input)

    async def adjust_quantities(
        self,
        name: str,
        adjustments: list[dict],
        reason: str,
        ledger_document_uri: str,
    ) -> list[dict]:
        """
        Apply quantity deltas to one inventory state ("available" or "incoming").

        Each adjustment is {sku, inventoryItemId, locationId, delta}.
        """

        def build_input(batch: list[dict]) -> dict:
            return {
                "name": name,
                "reason": reason,
                "changes": [
                    {
                        "inventoryItemId": f"gid://shopify/InventoryItem/{a['inventoryItemId']}",
                        "locationId": f"gid://shopify/Location/{a['locationId']}",
                        "delta": a["delta"],
                        "ledgerDocumentUri": ledger_document_uri,
                    }
                    for a in batch
                ],
            }

        results = await self._mutate_in_batches(
            ADJUST_QUANTITIES_MUTATION, "inventoryAdjustQuantities", adjustments, build_input
        )
        logger.info(
            "shopify.quantities_adjusted",
            name=name,
            reason=reason,
            succeeded=sum(1 for r in results if r["success"]),
            failed=sum(1 for r in results if not r["success"]),
        )
        return results


def build_inventory_snapshot(
    locations: list[dict],
    products: list[dict],
    levels_by_location: dict[str, list[dict]],
    display_names: dict[str, str],
    location_order: list[str],
) -> dict[str, Any]:
    """
    Group per-location levels by SKU for `inventoried` products.

    `levels_by_location` is keyed by the Shopify location id (as a string).
    """
    variants: dict[str, dict[str, str]] = {}
    for product in products:
        tags = [t.strip().lower() for t in (product.get("tags") or "").split(",")]
        if INVENTORIED_TAG not in tags:
            continue
        for variant in product.get("variants", []):
            if variant.get("sku") and variant.get("inventory_item_id"):
                variants[str(variant["inventory_item_id"])] = {
                    "sku": variant["sku"],
                    "inventoryItemId": str(variant["inventory_item_id"]),
                    "productTitle": product.get("title", ""),
                    "variantTitle": variant.get("title", ""),
                }

    active = [loc for loc in locations if loc.get("active", True)]
    by_sku: dict[str, dict[str, Any]] = {}
    details: dict[str, dict[str, dict[str, Any]]] = {}
    for location in active:
        display = display_names.get(location["name"], location["name"])
        location_rows = details.setdefault(display, {})
        for level in levels_by_location.get(str(location["id"]), []):
            info = variants.get(str(level["inventoryItemId"]))
            if info is None:
                continue
            row = by_sku.setdefault(
                info["sku"], {**info, "locations": {}, "totalAvailable": 0}
            )
            row["locations"][display] = row["locations"].get(display, 0) + level["available"]
            row["totalAvailable"] += level["available"]

            detail = location_rows.setdefault(
                info["sku"], {**info, "available": 0, "onHand": 0, "committed": 0, "incoming": 0}
            )
            for field in ("available", "onHand", "committed", "incoming"):
                detail[field] += level.get(field, 0)

    inventory = [by_sku[sku] for sku in sorted(by_sku)]
    location_ids = {display_names.get(loc["name"], loc["name"]): str(loc["id"]) for loc in active}
    displays = set(location_ids)
    ordered = [name for name in location_order if name in displays]
    ordered += sorted(displays - set(ordered))

    return {
        "totalSKUs": len(inventory),
        "totalUnits": sum(item["totalAvailable"] for item in inventory),
        "lowStockCount": sum(1 for item in inventory if 0 < item["totalAvailable"] <= 10),
        "outOfStockCount": sum(1 for item in inventory if item["totalAvailable"] <= 0),
        "locations": ordered,
        "locationIds": location_ids,
        "inventory": inventory,
        "locationDetails": {
            name: [rows[sku] for sku in sorted(rows)] for name, rows in details.items()
        },
    }
