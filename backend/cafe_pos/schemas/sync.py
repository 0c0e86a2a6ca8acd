"""Sync status and flush schemas."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


class BreakerState(BaseModel):
    healthy: bool
    prefer_remote: bool
    last_failure_at: Optional[datetime] = None
    retry_delay_seconds: float


class SyncStatusResponse(BaseModel):
    """Connectivity and queue overview for the POS status bar."""

    breaker: BreakerState
    remote_configured: bool
    flush_in_progress: bool
    queue: Dict[str, int]


class FlushResponse(BaseModel):
    skipped: bool = False
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    requeued: int = 0
    halted: bool = False
    error: Optional[str] = None


class DeleteResponse(BaseModel):
    id: str
    deleted: bool = True
