"""
Pending Operation Queue

Durable, ordered, at-least-once replay of writes that could not be applied
to the remote store.

- ``enqueue`` only touches the local store, so it works during an outage.
- ``flush`` replays records oldest-updated first. A requeued record keeps
  its ``updated_at``, so it stays ahead of anything enqueued after it. The
  operations of one record are an all-or-nothing ordered batch.
- A network failure puts the record back to ``pending``, opens the breaker
  and stops the batch so nothing later overtakes it.
- Any other failure marks that record ``failed`` for operator inspection and
  the batch continues.
- Concurrent ``flush`` callers share one in-flight run and its result.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from cafe_pos.core.clock import Clock, utc_now
from cafe_pos.db.session import SessionLocal
from cafe_pos.models.pending_queue import PendingQueueRecord, PendingStatus, REPLAYABLE_STATUSES
from cafe_pos.schemas.pending import (
    DeleteOperation,
    InsertOperation,
    PendingOperation,
    PendingPayload,
    UpdateOperation,
    UpsertOperation,
    parse_operations,
)
from cafe_pos.services.offline.health import ConnectivityHealth, describe_error
from cafe_pos.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
MAX_ERROR_LENGTH = 2000


@dataclass
class FlushResult:
    """Outcome of one flush run, shared by every caller awaiting it."""

    skipped: bool = False
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    requeued: int = 0
    halted: bool = False
    error: Optional[str] = None


class PendingOperationQueue:
    """Local pending queue plus the replay loop that drains it."""

    def __init__(
        self,
        remote: RemoteStore,
        health: ConnectivityHealth,
        *,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_size: int = DEFAULT_BATCH_SIZE,
        operation_timeout: Optional[float] = 10.0,
        clock: Clock = utc_now,
    ):
        self.remote = remote
        self.health = health
        self.batch_size = batch_size
        self.operation_timeout = operation_timeout or None
        self._session_factory = session_factory
        self._clock = clock
        self._flush_task: Optional[asyncio.Task] = None

    def _now(self) -> datetime:
        # Stored as UTC so string ordering on SQLite matches time ordering
        return self._clock().astimezone(timezone.utc)

    # ----- enqueue -----
    def enqueue(
        self,
        scope: str,
        operations: Sequence[Union[BaseModel, Dict[str, Any]]],
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Durably record ``operations`` for later replay.

        Returns the new record id, or ``None`` when there is nothing to queue.
        Malformed operations raise ``pydantic.ValidationError`` here rather
        than failing at replay time.
        """
        if not operations:
            return None

        payload = PendingPayload(operations=parse_operations(operations), context=context)
        record_id = str(uuid.uuid4())
        now = self._now()

        with self._session_factory() as session:
            max_seq = session.scalar(select(func.max(PendingQueueRecord.sequence)))
            session.add(
                PendingQueueRecord(
                    id=record_id,
                    scope=scope,
                    payload=payload.model_dump_json(),
                    status=PendingStatus.PENDING.value,
                    retry_count=0,
                    sequence=(max_seq or 0) + 1,
                    created_at=now,
                    updated_at=now,
                )
            )
            session.commit()

        logger.info(f"Queued {len(payload.operations)} operation(s) for later sync: {scope} ({record_id})")
        return record_id

    # ----- flush -----
    async def flush(self) -> FlushResult:
        """Replay pending records against the remote store.

        Never raises for remote or local-storage failures; the outcome is
        reported through the breaker and the returned ``FlushResult``.
        """
        if not self.health.should_prefer_remote():
            return FlushResult(skipped=True)

        task = self._flush_task
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._run_flush())
            task.add_done_callback(self._forget_flush)
            self._flush_task = task
        return await asyncio.shield(task)

    def _forget_flush(self, task: asyncio.Task) -> None:
        if self._flush_task is task:
            self._flush_task = None

    @property
    def flush_in_progress(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    async def _run_flush(self) -> FlushResult:
        result = FlushResult()
        try:
            records = self._load_batch()
            if not records:
                self.health.mark_healthy()
                return result

            for record in records:
                result.attempted += 1
                outcome = await self._replay(record)
                if outcome == PendingStatus.SYNCED:
                    result.synced += 1
                elif outcome == PendingStatus.FAILED:
                    result.failed += 1
                else:
                    result.requeued += 1
                    result.halted = True
                    break
        except Exception as exc:
            # Replay errors are handled per record; this is the local store itself
            result.error = describe_error(exc)
            if self.health.classify_error(exc):
                self.health.mark_failure(exc)
            else:
                logger.error(f"Unexpected error while flushing pending queue: {result.error}", exc_info=True)

        if result.attempted:
            logger.info(
                f"Pending queue flush: attempted={result.attempted} synced={result.synced} "
                f"failed={result.failed} requeued={result.requeued}"
            )
        return result

    async def _replay(self, record: PendingQueueRecord) -> PendingStatus:
        # A record keeps its place in line until it leaves the replayable states
        self._transition(record.id, PendingStatus.SYNCING, touch=False)

        try:
            payload = PendingPayload.model_validate_json(record.payload)
        except ValidationError as exc:
            message = f"Unreadable payload: {describe_error(exc)}"
            self._transition(record.id, PendingStatus.FAILED, last_error=message, increment_retry=True)
            logger.warning(f"Failed to replay pending record {record.id} ({record.scope}): {message}")
            return PendingStatus.FAILED

        try:
            for operation in payload.operations:
                await self.apply(operation)
        except Exception as exc:
            message = describe_error(exc)
            if self.health.classify_error(exc):
                self._transition(
                    record.id, PendingStatus.PENDING, last_error=message, increment_retry=True, touch=False
                )
                self.health.mark_failure(exc)
                return PendingStatus.PENDING

            self._transition(record.id, PendingStatus.FAILED, last_error=message, increment_retry=True)
            logger.warning(f"Failed to replay pending record {record.id} ({record.scope}): {message}")
            return PendingStatus.FAILED

        self._transition(record.id, PendingStatus.SYNCED)
        self.health.mark_healthy()
        return PendingStatus.SYNCED

    async def apply(self, operation: PendingOperation) -> List[Dict[str, Any]]:
        """Send one operation to the remote, bounded by ``operation_timeout``."""
        return await asyncio.wait_for(self._dispatch(operation), timeout=self.operation_timeout)

    async def _dispatch(self, operation: PendingOperation) -> List[Dict[str, Any]]:
        if isinstance(operation, InsertOperation):
            return await self.remote.insert(operation.table, operation.rows)
        elif isinstance(operation, UpsertOperation):
            return await self.remote.upsert(operation.table, operation.rows, on_conflict=operation.on_conflict)
        elif isinstance(operation, UpdateOperation):
            return await self.remote.update(operation.table, operation.patch, operation.match)
        elif isinstance(operation, DeleteOperation):
            return await self.remote.delete(operation.table, operation.match)
        else:
            raise TypeError(f"Unsupported pending operation: {operation!r}")

    # ----- local store access -----
    def _load_batch(self) -> List[PendingQueueRecord]:
        with self._session_factory() as session:
            stmt = (
                select(PendingQueueRecord)
                .where(PendingQueueRecord.status.in_(REPLAYABLE_STATUSES))
                .order_by(PendingQueueRecord.updated_at.asc(), PendingQueueRecord.sequence.asc())
                .limit(self.batch_size)
            )
            return list(session.scalars(stmt))

    def _transition(
        self,
        record_id: str,
        status: PendingStatus,
        *,
        last_error: Optional[str] = None,
        increment_retry: bool = False,
        touch: bool = True,
    ) -> None:
        with self._session_factory() as session:
            record = session.get(PendingQueueRecord, record_id)
            if record is None:
                # Removed by an operator while the flush was running
                return
            record.status = status.value
            record.last_error = last_error[:MAX_ERROR_LENGTH] if last_error else None
            if increment_retry:
                record.retry_count += 1
            if touch:
                record.updated_at = self._now()
            session.commit()

    def has_backlog(self) -> bool:
        """True while any record is still waiting to be replayed."""
        with self._session_factory() as session:
            first = session.scalar(
                select(PendingQueueRecord.id)
                .where(PendingQueueRecord.status.in_(REPLAYABLE_STATUSES))
                .limit(1)
            )
        return first is not None

    # ----- operator queries -----
    def get(self, record_id: str) -> Optional[PendingQueueRecord]:
        with self._session_factory() as session:
            return session.get(PendingQueueRecord, record_id)

    def list_records(self, status: Optional[str] = None, limit: int = 100) -> List[PendingQueueRecord]:
        """Most recently touched records first."""
        with self._session_factory() as session:
            stmt = select(PendingQueueRecord)
            if status:
                stmt = stmt.where(PendingQueueRecord.status == status)
            stmt = stmt.order_by(
                PendingQueueRecord.updated_at.desc(), PendingQueueRecord.sequence.desc()
            ).limit(limit)
            return list(session.scalars(stmt))

    def counts(self) -> Dict[str, int]:
        totals = {status.value: 0 for status in PendingStatus}
        with self._session_factory() as session:
            rows = session.execute(
                select(PendingQueueRecord.status, func.count()).group_by(PendingQueueRecord.status)
            )
            for status, count in rows:
                totals[status] = count
        return totals

    def delete(self, record_id: str) -> bool:
        with self._session_factory() as session:
            record = session.get(PendingQueueRecord, record_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
        logger.info(f"Removed pending record {record_id}")
        return True

    def clear(self, status: Optional[str] = None) -> int:
        """Remove every record (or every record in ``status``)."""
        with self._session_factory() as session:
            stmt = delete(PendingQueueRecord)
            if status:
                stmt = stmt.where(PendingQueueRecord.status == status)
            removed = session.execute(stmt).rowcount or 0
            session.commit()
        logger.info(f"Cleared {removed} pending record(s)")
        return removed
