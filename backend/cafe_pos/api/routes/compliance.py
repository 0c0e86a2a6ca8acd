"""Compliance routes (pest control certificates)."""

import logging

from fastapi import APIRouter, Request, Response, status

from cafe_pos.api.deps import Database, raise_for_result
from cafe_pos.core.config import settings
from cafe_pos.core.rate_limit import limiter
from cafe_pos.schemas.compliance import PestControlCreate, PestControlSaved, PestControlStatus
from cafe_pos.services.compliance_service import (
    PEST_CONTROL_SCOPE,
    build_pest_control_row,
    normalize_pest_control_row,
    summarize_pest_control,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/pest-control", response_model=PestControlStatus)
@limiter.limit("60/minute")
async def get_pest_control_status(request: Request, database: Database):
    """Latest fumigation service and renewal alert."""
    result = await database.select(
        settings.pest_control_table, order_by="service_date", ascending=False, limit=1
    )
    raise_for_result(result)
    return summarize_pest_control(
        result.data or [],
        alert_days=settings.pest_control_alert_days,
        source=result.source,
    )


@router.post("/pest-control", response_model=PestControlSaved, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def record_pest_control_service(
    request: Request, response: Response, body: PestControlCreate, database: Database
):
    """Store a service certificate; queued for sync when the remote is down."""
    row = build_pest_control_row(body)
    result = await database.insert(
        settings.pest_control_table,
        [row],
        scope=PEST_CONTROL_SCOPE,
        context={"certificate_number": body.certificate_number},
    )
    raise_for_result(result)

    if result.pending_sync:
        response.status_code = status.HTTP_202_ACCEPTED
        logger.info(f"Pest control record {row['id']} saved locally, will sync")

    stored = result.data[0] if result.data else row
    return PestControlSaved(record=normalize_pest_control_row(stored), pending_sync=result.pending_sync)
