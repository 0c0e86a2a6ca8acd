"""Sync routes: breaker state, manual flush and pending queue inspection."""

import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import ValidationError

from cafe_pos.api.deps import HealthTracker, PendingQueue
from cafe_pos.core.config import settings
from cafe_pos.core.rate_limit import limiter
from cafe_pos.models.pending_queue import PendingStatus
from cafe_pos.schemas.pending import PendingPayload, PendingRecordDetail, PendingRecordOut
from cafe_pos.schemas.sync import BreakerState, DeleteResponse, FlushResponse, SyncStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status", response_model=SyncStatusResponse)
@limiter.limit("120/minute")
def get_sync_status(request: Request, health: HealthTracker, queue: PendingQueue):
    """Connectivity and queue overview."""
    snapshot = health.snapshot()
    return SyncStatusResponse(
        breaker=BreakerState(prefer_remote=health.should_prefer_remote(), **snapshot),
        remote_configured=settings.remote_configured,
        flush_in_progress=queue.flush_in_progress,
        queue=queue.counts(),
    )


@router.post("/flush", response_model=FlushResponse)
@limiter.limit("10/minute")
async def flush_pending(request: Request, queue: PendingQueue):
    """Replay pending writes now instead of waiting for the next write."""
    result = await queue.flush()
    return FlushResponse(**asdict(result))


@router.get("/pending", response_model=List[PendingRecordOut])
@limiter.limit("60/minute")
def list_pending(
    request: Request,
    queue: PendingQueue,
    status: Optional[PendingStatus] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
):
    records = queue.list_records(status.value if status else None, limit=limit)
    return [PendingRecordOut.model_validate(record) for record in records]


@router.get("/pending/{record_id}", response_model=PendingRecordDetail)
@limiter.limit("60/minute")
def get_pending(request: Request, record_id: str, queue: PendingQueue):
    record = queue.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Pending record not found")

    summary = PendingRecordOut.model_validate(record).model_dump()
    try:
        return PendingRecordDetail(**summary, payload=PendingPayload.model_validate_json(record.payload))
    except ValidationError:
        # Unreadable payloads are shown raw so an operator can drop them
        return PendingRecordDetail(**summary, raw_payload=record.payload)


@router.delete("/pending/{record_id}", response_model=DeleteResponse)
@limiter.limit("30/minute")
def delete_pending(request: Request, record_id: str, queue: PendingQueue):
    if not queue.delete(record_id):
        raise HTTPException(status_code=404, detail="Pending record not found")
    logger.warning(f"Pending record {record_id} discarded through the API")
    return DeleteResponse(id=record_id)
