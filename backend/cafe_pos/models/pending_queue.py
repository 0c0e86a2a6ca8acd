"""
Pending Queue Models - durable store for writes that bypassed the remote

A record is created when a remote write fails with a network-classified
error (or when the breaker already prefers the local fallback) and is
replayed by the flush loop once connectivity returns.

Lifecycle: pending -> syncing -> synced | pending | failed
"""

import enum
from typing import Optional

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cafe_pos.db.base import Base, TimestampMixin


class PendingStatus(str, enum.Enum):
    """Replay status of a pending queue record."""
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


# Statuses picked up by the flush loop; a crash mid-flush leaves "syncing" rows behind
REPLAYABLE_STATUSES = (PendingStatus.PENDING.value, PendingStatus.SYNCING.value)


class PendingQueueRecord(TimestampMixin, Base):
    """One ordered, all-or-nothing batch of remote operations."""
    __tablename__ = "pos_pending_queue"
    __table_args__ = (
        Index("ix_pos_pending_queue_status_updated", "status", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    scope: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    # JSON: {"operations": [...], "context": {...}}
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PendingStatus.PENDING.value
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Tie-breaker for records sharing the same updated_at
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<PendingQueueRecord {self.id} scope={self.scope} "
            f"status={self.status} retries={self.retry_count}>"
        )
