"""
Order Service - ticket creation

An order is written as one group of operations so that, when the remote is
down, the whole ticket is queued as a single record and replays together:

1. upsert the order row (``id``)
2. replace its line items (delete by ``orderId``, then insert)
3. upsert the ticket on ``orderId``

Every step is safe to repeat, so an at-least-once replay cannot duplicate
the ticket.
"""

import random
import string
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from cafe_pos.core.clock import utc_now
from cafe_pos.core.config import settings
from cafe_pos.schemas.orders import OrderCreate
from cafe_pos.schemas.pending import (
    DeleteOperation,
    InsertOperation,
    PendingOperation,
    UpsertOperation,
)

ORDER_CREATE_SCOPE = "orders:create"
TICKET_CODE_PREFIX = "XL-"


def generate_ticket_code(rng: Optional[random.Random] = None) -> str:
    """Short code printed on the ticket, e.g. ``XL-07QMB``."""
    rng = rng or random.SystemRandom()
    digits = "".join(rng.choice(string.digits) for _ in range(2))
    letters = "".join(rng.choice(string.ascii_uppercase) for _ in range(3))
    return f"{TICKET_CODE_PREFIX}{digits}{letters}"


def build_order_rows(body: OrderCreate, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Order, line item and ticket rows for a new ticket.

    The ticket code doubles as the order id when the client sends no id.
    """
    ticket_code = body.ticket_code or generate_ticket_code()
    order_id = body.order_id or body.ticket_code or str(uuid.uuid4())
    created_at = (now or utc_now()).isoformat()

    subtotal = body.totals.subtotal if body.totals else None
    total = body.totals.total if body.totals and body.totals.total is not None else subtotal
    if total is None:
        total = sum(item.price * item.quantity for item in body.items)

    order = {
        "id": order_id,
        "status": body.status,
        "currency": body.currency,
        "total": total,
        "orderNumber": ticket_code,
        "queuedPaymentMethod": body.payment_method,
        "items": [item.model_dump(by_alias=True, exclude_none=True) for item in body.items],
        "createdAt": created_at,
        "updatedAt": created_at,
    }
    if body.totals:
        order["totals"] = body.totals.model_dump(exclude_none=True)
    if body.user_id:
        order["userId"] = body.user_id
    if body.notes:
        order["notes"] = body.notes

    items = [
        {"orderId": order_id, "productId": item.product_id, "quantity": item.quantity, "price": item.price}
        for item in body.items
    ]
    ticket = {"orderId": order_id, "ticketCode": ticket_code, "paymentMethod": body.payment_method}
    return {"order": order, "items": items, "ticket": ticket}


def build_order_operations(rows: Dict[str, Any]) -> List[PendingOperation]:
    order_id = rows["order"]["id"]
    operations: List[PendingOperation] = [
        UpsertOperation(table=settings.orders_table, rows=[rows["order"]], on_conflict="id"),
        DeleteOperation(table=settings.order_items_table, match={"orderId": order_id}),
    ]
    if rows["items"]:
        operations.append(InsertOperation(table=settings.order_items_table, rows=rows["items"]))
    operations.append(
        UpsertOperation(table=settings.tickets_table, rows=[rows["ticket"]], on_conflict="orderId")
    )
    return operations
