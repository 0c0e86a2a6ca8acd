"""SQLAlchemy models for the local durable store."""

from cafe_pos.models.pending_queue import PendingQueueRecord, PendingStatus, REPLAYABLE_STATUSES
from cafe_pos.models.local_mirror import MirrorRow

__all__ = [
    "PendingQueueRecord",
    "PendingStatus",
    "REPLAYABLE_STATUSES",
    "MirrorRow",
]
