"""Order routes: ticket creation, status-projected list and manual completion."""

import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from pydantic import ValidationError

from cafe_pos.api.deps import Database, raise_for_result, raise_validation_error
from cafe_pos.core.clock import utc_now
from cafe_pos.core.config import settings
from cafe_pos.core.rate_limit import limiter
from cafe_pos.schemas.orders import OrderCreate, OrderCreated
from cafe_pos.schemas.status import OrderSnapshot
from cafe_pos.services.order_service import ORDER_CREATE_SCOPE, build_order_operations, build_order_rows
from cafe_pos.services.status_rules import STATUS_COMPLETED, project_orders

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
async def list_orders(
    request: Request,
    database: Database,
    include_hidden: bool = Query(False, description="Include past orders older than 3 days"),
    limit: int = Query(500, ge=1, le=5000),
):
    """Orders with derived status; nothing is written back."""
    result = await database.select(
        settings.orders_table, order_by="createdAt", ascending=False, limit=limit
    )
    raise_for_result(result)

    orders = project_orders([OrderSnapshot.model_validate(row) for row in result.data or []])
    if not include_hidden:
        orders = [order for order in orders if not order.is_hidden]

    return {
        "orders": [order.model_dump(mode="json", by_alias=True) for order in orders],
        "source": result.source,
        "fallback_used": result.fallback_used,
    }


@router.post("/{order_id}/complete")
@limiter.limit("30/minute")
async def complete_order(request: Request, response: Response, order_id: str, database: Database):
    """Mark a ticket as completed. Answers 202 when the change was queued offline."""
    patch = {"status": STATUS_COMPLETED, "updatedAt": utc_now().isoformat()}
    try:
        result = await database.update(
            settings.orders_table, patch, {"id": order_id}, scope="orders:complete"
        )
    except ValidationError as e:
        raise_validation_error(e)
    raise_for_result(result)

    if result.pending_sync:
        response.status_code = status.HTTP_202_ACCEPTED
        logger.info(f"Order {order_id} completion queued for sync ({result.queue_id})")
    elif not result.data:
        raise HTTPException(status_code=404, detail="Order not found")

    return {
        "id": order_id,
        "status": STATUS_COMPLETED,
        "pending_sync": result.pending_sync,
        "queue_id": result.queue_id,
    }


@router.post("/", response_model=OrderCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_order(request: Request, response: Response, body: OrderCreate, database: Database):
    """Ring up a ticket. The order, its items and its ticket sync as one unit."""
    rows = build_order_rows(body)
    order_id = rows["order"]["id"]
    ticket_code = rows["ticket"]["ticketCode"]

    result = await database.submit(
        build_order_operations(rows),
        scope=ORDER_CREATE_SCOPE,
        context={"orderId": order_id, "ticketCode": ticket_code},
    )
    raise_for_result(result)

    if result.pending_sync:
        response.status_code = status.HTTP_202_ACCEPTED
        logger.info(f"Order {order_id} saved locally, will sync ({result.queue_id})")

    return OrderCreated(
        order_id=order_id,
        ticket_code=ticket_code,
        items=len(rows["items"]),
        pending_sync=result.pending_sync,
        queue_id=result.queue_id,
    )
