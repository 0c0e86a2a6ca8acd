"""Waste log routes: recent shift closes and recording a new one."""

import logging

from fastapi import APIRouter, Request, Response, status

from cafe_pos.api.deps import Database, raise_for_result
from cafe_pos.core.config import settings
from cafe_pos.core.rate_limit import limiter
from cafe_pos.schemas.waste import WasteLogCreate, WasteLogList, WasteLogSaved
from cafe_pos.services.waste_service import (
    RECENT_WASTE_LOGS,
    WASTE_LOG_SCOPE,
    build_waste_row,
    normalize_waste_row,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=WasteLogList)
@limiter.limit("60/minute")
async def list_waste_logs(request: Request, database: Database):
    result = await database.select(
        settings.waste_logs_table, order_by="createdAt", ascending=False, limit=RECENT_WASTE_LOGS
    )
    raise_for_result(result)
    return WasteLogList(
        logs=[normalize_waste_row(row) for row in result.data or []],
        source=result.source,
        fallback_used=result.fallback_used,
    )


@router.post("/", response_model=WasteLogSaved, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def record_waste_log(request: Request, response: Response, body: WasteLogCreate, database: Database):
    """Close the shift's sanitation checklist; queued for sync when offline."""
    row = build_waste_row(body)
    result = await database.insert(settings.waste_logs_table, [row], scope=WASTE_LOG_SCOPE)
    raise_for_result(result)

    if result.pending_sync:
        response.status_code = status.HTTP_202_ACCEPTED
        logger.info(f"Waste log {row['id']} saved locally, will sync")

    stored = result.data[0] if result.data else row
    return WasteLogSaved(record=normalize_waste_row(stored), pending_sync=result.pending_sync)
