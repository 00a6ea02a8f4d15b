import secrets
from datetime import datetime, timezone
from typing import Dict, Optional

from errors import NotFound
from storage import ORDERS, DocumentStore, parse_object_id

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_DELIVERED)

SERVER_ASSIGNED_FIELDS = {"_id", "status", "invoiceDate", "invoiceNumber"}


def generate_invoice_number(created_at: datetime) -> str:
    # millisecond timestamp plus one random digit; collisions are possible
    stamp = created_at.strftime("%Y%m%d%H%M%S") + f"{created_at.microsecond // 1000:03d}"
    return f"INV-{stamp}{secrets.randbelow(10)}"


def new_order_document(payload: Optional[Dict], now: Optional[datetime] = None) -> Dict:
    created_at = now or datetime.now(timezone.utc)
    order_document = {
        key: value
        for key, value in (payload or {}).items()
        if key not in SERVER_ASSIGNED_FIELDS
    }
    order_document.update(
        {
            "status": ORDER_STATUS_PENDING,
            "invoiceDate": created_at,
            "invoiceNumber": generate_invoice_number(created_at),
        }
    )
    return order_document


def place_order(store: DocumentStore, payload: Optional[Dict]) -> Dict:
    order_document = new_order_document(payload)
    store.insert_one(ORDERS, order_document)
    return order_document


def mark_delivered(store: DocumentStore, order_id: str) -> Dict:
    """Flip an order to delivered.

    The update is unconditional, so repeating it leaves the order unchanged.
    """
    object_id = parse_object_id(order_id, "order")
    updated = store.find_one_and_update(
        ORDERS, {"_id": object_id}, {"$set": {"status": ORDER_STATUS_DELIVERED}}
    )
    if not updated:
        raise NotFound("order")
    return updated
