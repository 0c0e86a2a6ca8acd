"""Reservation routes."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from pydantic import ValidationError

from cafe_pos.api.deps import Database, raise_for_result, raise_validation_error
from cafe_pos.core.clock import utc_now
from cafe_pos.core.config import settings
from cafe_pos.core.rate_limit import limiter
from cafe_pos.schemas.status import ReservationSnapshot
from cafe_pos.services.status_rules import STATUS_COMPLETED, project_reservations

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
async def list_reservations(
    request: Request,
    database: Database,
    include_hidden: bool = Query(False),
    status_filter: Optional[str] = Query(None, alias="status", description="Derived status to keep"),
):
    result = await database.select(
        settings.reservations_table, order_by="reservationDate", ascending=True
    )
    raise_for_result(result)

    reservations = project_reservations(
        [ReservationSnapshot.model_validate(row) for row in result.data or []]
    )
    if not include_hidden:
        reservations = [r for r in reservations if not r.is_hidden]
    if status_filter:
        reservations = [r for r in reservations if r.status == status_filter.lower()]

    return {
        "reservations": [r.model_dump(mode="json", by_alias=True) for r in reservations],
        "source": result.source,
        "fallback_used": result.fallback_used,
    }


@router.post("/{reservation_id}/complete")
@limiter.limit("30/minute")
async def complete_reservation(
    request: Request, response: Response, reservation_id: str, database: Database
):
    """Mark a reservation as honoured (guest seated)."""
    patch = {"status": STATUS_COMPLETED, "updatedAt": utc_now().isoformat()}
    try:
        result = await database.update(
            settings.reservations_table, patch, {"id": reservation_id}, scope="reservations:complete"
        )
    except ValidationError as e:
        raise_validation_error(e)
    raise_for_result(result)

    if result.pending_sync:
        response.status_code = status.HTTP_202_ACCEPTED
    elif not result.data:
        raise HTTPException(status_code=404, detail="Reservation not found")

    return {
        "id": reservation_id,
        "status": STATUS_COMPLETED,
        "pending_sync": result.pending_sync,
        "queue_id": result.queue_id,
    }
