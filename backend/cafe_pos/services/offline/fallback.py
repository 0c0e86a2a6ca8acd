"""Fallback database: remote first, local queue + mirror when offline.

Route handlers talk to this facade instead of the remote client directly.

Writes:
1. Drain the pending queue first so older offline writes keep their order.
   If anything is still waiting afterwards the new write joins the queue
   behind it instead of overtaking it.
2. If the breaker prefers the remote, apply the write there and refresh the
   local mirror.
3. On a network-classified failure (or when the breaker is open) the write
   is queued for replay and applied to the mirror; the caller gets
   ``pending_sync=True`` and should answer "saved, will sync".
4. A logical remote failure is returned as an error and is not queued.

A write may be a group of operations (``submit``). They run in order; on a
network failure the ones not yet applied are queued together as one record.

Reads replay the queue once, prefer the remote (refreshing the mirror) and
fall back to the mirror when the remote is unreachable.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from cafe_pos.schemas.pending import (
    DeleteOperation,
    InsertOperation,
    PendingOperation,
    UpdateOperation,
    UpsertOperation,
    parse_operations,
)
from cafe_pos.services.offline.health import ConnectivityHealth, describe_error
from cafe_pos.services.offline.mirror import LocalMirror
from cafe_pos.services.offline.queue import PendingOperationQueue
from cafe_pos.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"


@dataclass
class DatabaseResult:
    """Outcome of a facade call."""

    data: Any = None
    error: Optional[Exception] = None
    source: str = SOURCE_REMOTE
    # Remote was attempted and failed with a network error
    fallback_used: bool = False
    # Write was queued locally and will be replayed later
    pending_sync: bool = False
    queue_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _first(result: DatabaseResult) -> DatabaseResult:
    result.data = result.data[0] if result.data else None
    return result


class FallbackDatabase:
    """Write-through facade over the remote store with a local fallback."""

    def __init__(
        self,
        remote: RemoteStore,
        health: ConnectivityHealth,
        queue: PendingOperationQueue,
        mirror: LocalMirror,
    ):
        self.remote = remote
        self.health = health
        self.queue = queue
        self.mirror = mirror

    def is_healthy(self) -> bool:
        return self.health.should_prefer_remote()

    async def sync_pending(self):
        return await self.queue.flush()

    async def _drain(self) -> bool:
        """Flush until nothing is waiting. False when replay cannot finish now."""
        while True:
            result = await self.queue.flush()
            if not self.queue.has_backlog():
                return True
            if result.skipped or result.halted or result.error or not result.attempted:
                return False

    # ----- reads -----
    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
        key_column: str = "id",
    ) -> DatabaseResult:
        # Queued writes reach the remote before it is read back
        await self.queue.flush()

        fallback_used = False
        if self.health.should_prefer_remote():
            try:
                rows = await self.remote.select(
                    table, filters, order_by=order_by, ascending=ascending, limit=limit
                )
            except Exception as exc:
                if not self.health.classify_error(exc):
                    logger.warning(f"Remote read from {table} failed: {describe_error(exc)}")
                    return DatabaseResult(error=exc, source=SOURCE_REMOTE)
                self.health.mark_failure(exc)
                fallback_used = True
            else:
                self.health.mark_healthy()
                self._mirror_safely(table, lambda: self.mirror.upsert(table, rows, key_column))
                return DatabaseResult(data=rows, source=SOURCE_REMOTE)

        rows = self.mirror.select(
            table, filters, order_by=order_by, ascending=ascending, limit=limit
        )
        return DatabaseResult(data=rows, source=SOURCE_LOCAL, fallback_used=fallback_used)

    # ----- writes -----
    async def insert(
        self,
        table: str,
        rows: Sequence[Dict[str, Any]],
        *,
        scope: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> DatabaseResult:
        operation = InsertOperation(table=table, rows=list(rows))
        return _first(await self._write([operation], scope or f"{table}:insert", context))

    async def upsert(
        self,
        table: str,
        rows: Sequence[Dict[str, Any]],
        *,
        on_conflict: Optional[str] = None,
        scope: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> DatabaseResult:
        operation = UpsertOperation(table=table, rows=list(rows), on_conflict=on_conflict)
        return _first(await self._write([operation], scope or f"{table}:upsert", context))

    async def update(
        self,
        table: str,
        patch: Dict[str, Any],
        match: Mapping[str, Any],
        *,
        scope: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> DatabaseResult:
        operation = UpdateOperation(table=table, patch=patch, match=dict(match))
        return _first(await self._write([operation], scope or f"{table}:update", context))

    async def delete(
        self,
        table: str,
        match: Mapping[str, Any],
        *,
        scope: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> DatabaseResult:
        operation = DeleteOperation(table=table, match=dict(match))
        return _first(await self._write([operation], scope or f"{table}:delete", context))

    async def submit(
        self,
        operations: Sequence[Union[BaseModel, Dict[str, Any]]],
        *,
        scope: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> DatabaseResult:
        """Apply an ordered group of operations as one unit of work.

        ``data`` holds one list of rows per operation. Operations are
        validated up front; malformed ones raise ``pydantic.ValidationError``
        before anything is sent.
        """
        return await self._write(operations, scope, context)

    async def _write(
        self,
        operations: Sequence[Union[BaseModel, Dict[str, Any]]],
        scope: str,
        context: Optional[Dict[str, Any]],
    ) -> DatabaseResult:
        operations = parse_operations(operations)
        if not operations:
            return DatabaseResult(data=[])

        drained = await self._drain()

        applied: List[Any] = []
        attempted_remote = False
        if drained and self.health.should_prefer_remote():
            attempted_remote = True
            for operation in operations:
                try:
                    data = await self.queue.apply(operation)
                except Exception as exc:
                    if not self.health.classify_error(exc):
                        logger.warning(
                            f"Remote {operation.type} on {operation.table} rejected ({scope}): "
                            f"{describe_error(exc)}"
                        )
                        return DatabaseResult(data=applied, error=exc, source=SOURCE_REMOTE)
                    self.health.mark_failure(exc)
                    break
                self.health.mark_healthy()
                self._mirror_safely(operation.table, lambda: self._mirror(operation, data))
                applied.append(data)
            else:
                return DatabaseResult(data=applied, source=SOURCE_REMOTE)
        elif not drained:
            logger.info(f"Older writes are still waiting to sync; queueing {scope} behind them")

        # Local-store failures below propagate to the caller
        remaining = operations[len(applied):]
        queue_id = self.queue.enqueue(scope, remaining, context)
        for operation in remaining:
            applied.append(self._mirror(operation))
        return DatabaseResult(
            data=applied,
            source=SOURCE_LOCAL,
            fallback_used=attempted_remote,
            pending_sync=True,
            queue_id=queue_id,
        )

    def _mirror(self, operation: PendingOperation, data: Optional[List[Dict[str, Any]]] = None) -> Any:
        """Apply ``operation`` to the mirror, preferring rows the remote returned."""
        if isinstance(operation, InsertOperation):
            return self.mirror.upsert(operation.table, data or operation.rows)
        if isinstance(operation, UpsertOperation):
            return self.mirror.upsert(operation.table, data or operation.rows, operation.on_conflict)
        if isinstance(operation, UpdateOperation):
            return self.mirror.update(operation.table, operation.patch, operation.match)
        return self.mirror.delete(operation.table, operation.match)

    def _mirror_safely(self, table: str, write) -> None:
        """Refresh the mirror after a remote success; the remote result still stands."""
        try:
            write()
        except SQLAlchemyError as exc:
            logger.warning(f"Could not refresh local mirror for {table}: {exc}", exc_info=True)
