"""
Slack message bodies for lifecycle events.

Each builder turns an event payload into `(fallback_text, blocks)` for
chat.postMessage. Payload keys are the camelCase ones the ledgers emit.
"""

from typing import Any

from alerts.dispatcher import (
    LOW_STOCK,
    PRODUCTION_ORDER_CANCELLED,
    PRODUCTION_ORDER_CREATED,
    PRODUCTION_ORDER_DELIVERY,
    TRANSFER_CANCELLED,
    TRANSFER_DELIVERY,
    TRANSFER_IN_TRANSIT,
    NotificationEvent,
)

TRACKING_URLS = {
    "UPS": "https://www.ups.com/track?tracknum=",
    "FedEx": "https://www.fedex.com/fedextrack/?trknbr=",
    "USPS": "https://tools.usps.com/go/TrackConfirmAction?tLabels=",
    "DHL": "https://www.dhl.com/us-en/home/tracking/tracking-express.html?submit=1&tracking-id=",
    "Amazon": "https://www.amazon.com/progress-tracker/package/ref=ppx_yo_dt_b_track_package?itemId=",
}

Message = tuple[str, list[dict[str, Any]]]


def tracking_url(carrier: str | None, tracking_number: str | None) -> str | None:
    if not tracking_number:
        return None
    base = TRACKING_URLS.get(carrier or "")
    return f"{base}{tracking_number}" if base else None


def _tracking_text(payload: dict[str, Any]) -> str:
    number = payload.get("trackingNumber")
    if not number:
        return "N/A"
    url = tracking_url(payload.get("carrier"), number)
    return f"<{url}|{number}>" if url else number


def _section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def format_sku_list(items: list[dict[str, Any]], key: str = "quantity") -> str:
    return "\n".join(f"• {item['sku']}: {item.get(key, 0)}" for item in items) or "(none)"


def transfer_in_transit(p: dict[str, Any]) -> Message:
    header = (
        f"*🚚 Transfer In Transit*\n*Transfer#:* {p['transferId']}    *Marked By:* {p.get('actor')}\n"
        f"*Origin:* {p['origin']}    *Destination:* {p['destination']}\n"
        f"*Shipment Type:* {p.get('shipmentType')}    *ETA:* {p.get('eta') or 'Not set'}\n"
        f"*Tracking:* {_tracking_text(p)}"
    )
    return (
        f"Transfer In Transit: {p['transferId']}",
        [_section(header), _section(f"*Items:*\n{format_sku_list(p.get('items', []))}")],
    )


def transfer_delivery(p: dict[str, Any]) -> Message:
    delivered = p.get("status") == "delivered"
    status_text = "Fully Delivered" if delivered else "Partial Delivery"
    header = (
        f"*{'✅' if delivered else '📬'} Transfer Delivery Logged*\n"
        f"*Transfer#:* {p['transferId']}    *Status:* {status_text}\n"
        f"*Received By:* {p.get('actor')}    *Shipment Type:* {p.get('shipmentType')}\n"
        f"*Origin:* {p['origin']}    *Destination:* {p['destination']}\n"
        f"*Tracking:* {_tracking_text(p)}"
    )
    progress = "\n".join(
        f"• {i['sku']}: {i['delivered']}/{i['totalQty']}" + (f" ({i['pending']} pending)" if i.get("pending") else "")
        for i in p.get("items", [])
    )
    return (
        f"Transfer Delivery: {p['transferId']} - {status_text}",
        [_section(header), _section(f"*Items:*\n{progress}")],
    )


def transfer_cancelled(p: dict[str, Any]) -> Message:
    header = (
        f"*❌ Transfer Cancelled*\n*Transfer#:* {p['transferId']}    *Cancelled By:* {p.get('actor')}\n"
        f"*Origin:* {p['origin']}    *Destination:* {p['destination']}\n"
        f"*Shipment Type:* {p.get('shipmentType')}"
    )
    blocks = [_section(header), _section(f"*Items:*\n{format_sku_list(p.get('items', []))}")]
    if p.get("restockedItems"):
        blocks.append(_section(f"*📦 Restocked to {p['origin']}:*\n{format_sku_list(p['restockedItems'])}"))
    return f"Transfer Cancelled: {p['transferId']}", blocks


def production_order_created(p: dict[str, Any]) -> Message:
    label = p.get("poNumber") or p["orderId"]
    header = (
        f"*📦 New Production Order Created*\n*PO#:* {label}    *Created By:* {p.get('actor')}\n"
        f"*Vendor:* {p.get('vendor') or 'N/A'}    *ETA:* {p.get('eta') or 'Not set'}"
    )
    return (
        f"New PO Created: {label}",
        [_section(header), _section(f"*Items:*\n{format_sku_list(p.get('items', []))}")],
    )


def production_order_delivery(p: dict[str, Any]) -> Message:
    label = p.get("poNumber") or p["orderId"]
    delivered = p.get("status") == "delivered"
    status_text = "Fully Delivered" if delivered else "Partial Delivery"
    header = (
        f"*{'✅' if delivered else '📬'} PO Delivery Logged*\n*PO#:* {label}    *Status:* {status_text}\n"
        f"*Vendor:* {p.get('vendor') or 'N/A'}    *Received By:* {p.get('actor')}\n"
        f"*Location:* {p.get('location')}"
    )
    blocks = [_section(header), _section(f"*Delivered Items:*\n{format_sku_list(p.get('deliveredItems', []))}")]
    if not delivered and p.get("pendingItems"):
        blocks.append(_section(f"*⏳ Pending Items:*\n{format_sku_list(p['pendingItems'])}"))
    return f"PO Delivery: {label} - {status_text}", blocks


def production_order_cancelled(p: dict[str, Any]) -> Message:
    label = p.get("poNumber") or p["orderId"]
    header = (
        f"*❌ Production Order Cancelled*\n*PO#:* {label}    *Cancelled By:* {p.get('actor')}\n"
        f"*Vendor:* {p.get('vendor') or 'N/A'}"
    )
    return (
        f"PO Cancelled: {label}",
        [_section(header), _section(f"*Items:*\n{format_sku_list(p.get('items', []))}")],
    )


def low_stock(p: dict[str, Any]) -> Message:
    items = p.get("items", [])
    lines = "\n".join(
        f"• *{i['sku']}*: {i['quantity']} units (threshold {i['threshold']})"
        + (f" ({i['variantName']})" if i.get("variantName") else "")
        for i in items
    )
    header = f"*⚠️ Low Stock Alert - {p['location']}*\nThe following SKUs have fallen below their threshold:"
    return (
        f"Low Stock Alert: {len(items)} SKU(s) low at {p['location']}",
        [_section(header), _section(lines)],
    )


BUILDERS = {
    TRANSFER_IN_TRANSIT: transfer_in_transit,
    TRANSFER_DELIVERY: transfer_delivery,
    TRANSFER_CANCELLED: transfer_cancelled,
    PRODUCTION_ORDER_CREATED: production_order_created,
    PRODUCTION_ORDER_DELIVERY: production_order_delivery,
    PRODUCTION_ORDER_CANCELLED: production_order_cancelled,
    LOW_STOCK: low_stock,
}


def build_message(event: NotificationEvent) -> Message:
    return BUILDERS[event.kind](event.payload)
