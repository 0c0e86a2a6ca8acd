"""Tests for the pending operation queue and its replay loop."""

import asyncio

import httpx
import pytest
from pydantic import ValidationError

from cafe_pos.models.pending_queue import PendingQueueRecord
from cafe_pos.schemas.pending import InsertOperation, UpsertOperation
from cafe_pos.services.offline import PendingOperationQueue
from cafe_pos.services.remote_store import RemoteStoreError


def insert_op(table="orders", **row):
    return InsertOperation(table=table, rows=[row])


def inserted_ids(remote):
    return [payload[0]["id"] for op, _, payload in remote.calls if op == "insert"]


class TestEnqueue:
    """Recording operations locally."""

    def test_enqueue_creates_pending_record(self, queue, clock):
        record_id = queue.enqueue("orders:insert", [insert_op(id="A1", status="pending")], {"ticket": "A1"})

        record = queue.get(record_id)
        assert record.status == "pending"
        assert record.scope == "orders:insert"
        assert record.retry_count == 0
        assert record.last_error is None
        assert record.sequence == 1

    def test_enqueue_empty_list_is_noop(self, queue):
        assert queue.enqueue("orders:insert", []) is None
        assert queue.list_records() == []

    def test_enqueue_accepts_plain_dicts(self, queue):
        record_id = queue.enqueue(
            "inventory:upsert",
            [{"type": "upsert", "table": "inventory", "rows": {"id": "milk", "qty": 3}, "on_conflict": "id"}],
        )
        assert record_id is not None

    @pytest.mark.parametrize("operation", [
        {"type": "insert", "table": "orders", "rows": []},
        {"type": "delete", "table": "orders", "match": {}},
        {"type": "truncate", "table": "orders"},
        {"type": "insert", "table": "orders; drop table x", "rows": [{"id": 1}]},
    ])
    def test_enqueue_rejects_malformed_operations(self, queue, operation):
        with pytest.raises(ValidationError):
            queue.enqueue("orders:insert", [operation])
        assert queue.list_records() == []

    def test_sequence_increases(self, queue):
        first = queue.enqueue("orders:insert", [insert_op(id="1")])
        second = queue.enqueue("orders:insert", [insert_op(id="2")])
        assert queue.get(second).sequence == queue.get(first).sequence + 1


class TestFlush:
    """Replay against the remote store."""

    @pytest.mark.asyncio
    async def test_replays_in_updated_order(self, queue, remote, clock):
        queue.enqueue("orders:insert", [insert_op(id="1")])
        clock.advance(seconds=1)
        queue.enqueue("orders:insert", [insert_op(id="2")])
        clock.advance(seconds=1)
        queue.enqueue("orders:insert", [insert_op(id="3")])

        result = await queue.flush()

        assert result.attempted == 3
        assert result.synced == 3
        assert inserted_ids(remote) == ["1", "2", "3"]
        assert {r.status for r in queue.list_records()} == {"synced"}

    @pytest.mark.asyncio
    async def test_same_timestamp_falls_back_to_enqueue_order(self, queue, remote):
        for ticket in ("b", "a", "c"):
            queue.enqueue("orders:insert", [insert_op(id=ticket)])

        await queue.flush()

        assert inserted_ids(remote) == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_operations_of_one_record_run_in_order(self, queue, remote):
        queue.enqueue(
            "orders:sale",
            [
                insert_op(id="T1"),
                UpsertOperation(table="inventory", rows=[{"id": "milk", "qty": 9}], on_conflict="id"),
            ],
        )

        await queue.flush()

        assert [(op, table) for op, table, _ in remote.calls] == [("insert", "orders"), ("upsert", "inventory")]

    @pytest.mark.asyncio
    async def test_network_error_requeues_and_halts(self, queue, remote, health):
        first = queue.enqueue("orders:insert", [insert_op(id="1")])
        second = queue.enqueue("orders:insert", [insert_op(id="2")])
        remote.errors = [httpx.ConnectError("fetch failed")]

        result = await queue.flush()

        assert result.requeued == 1
        assert result.halted is True
        assert result.attempted == 1
        assert len(remote.calls) == 1

        record = queue.get(first)
        assert record.status == "pending"
        assert record.retry_count == 1
        assert "fetch failed" in record.last_error
        assert queue.get(second).status == "pending"
        assert queue.get(second).retry_count == 0
        assert health.healthy is False

    @pytest.mark.asyncio
    async def test_later_record_never_synced_before_requeued_one(self, queue, remote):
        queue.enqueue("orders:insert", [insert_op(id="1")])
        second = queue.enqueue("orders:insert", [insert_op(id="2")])
        third = queue.enqueue("orders:insert", [insert_op(id="3")])
        remote.errors = [None, httpx.ConnectError("connect ECONNREFUSED")]

        await queue.flush()

        assert queue.get(second).status == "pending"
        assert queue.get(third).status == "pending"
        assert inserted_ids(remote) == ["1", "2"]

    @pytest.mark.asyncio
    async def test_requeued_record_replays_after_retry_delay(self, queue, remote, clock):
        first = queue.enqueue("orders:insert", [insert_op(id="1")])
        second = queue.enqueue("orders:insert", [insert_op(id="2")])
        remote.errors = [httpx.ConnectError("fetch failed")]
        await queue.flush()

        skipped = await queue.flush()
        assert skipped.skipped is True
        assert len(remote.calls) == 1

        clock.advance(seconds=30)
        result = await queue.flush()

        assert result.synced == 2
        assert inserted_ids(remote) == ["1", "1", "2"]
        assert queue.get(first).status == "synced"
        assert queue.get(first).retry_count == 1
        assert queue.get(second).status == "synced"

    @pytest.mark.asyncio
    async def test_requeued_record_keeps_its_place_in_line(self, queue, remote, clock):
        first = queue.enqueue("orders:insert", [insert_op(id="A")])
        enqueued_at = queue.get(first).updated_at
        clock.advance(seconds=1)
        queue.enqueue("orders:insert", [insert_op(id="B")])
        clock.advance(seconds=5)
        remote.errors = [httpx.ConnectError("fetch failed")]
        await queue.flush()

        assert queue.get(first).updated_at == enqueued_at

        clock.advance(seconds=30)
        result = await queue.flush()

        assert result.synced == 2
        assert inserted_ids(remote) == ["A", "A", "B"]

    @pytest.mark.asyncio
    async def test_logical_error_marks_failed_and_continues(self, queue, remote, health):
        # Second insert hits the same primary key: a logical error
        bad = queue.enqueue("orders:insert", [insert_op(id="1"), insert_op(id="1")])
        good = queue.enqueue("orders:insert", [insert_op(id="2")])

        result = await queue.flush()

        assert result.failed == 1
        assert result.synced == 1
        record = queue.get(bad)
        assert record.status == "failed"
        assert record.retry_count == 1
        assert "duplicate key" in record.last_error
        assert queue.get(good).status == "synced"
        assert health.healthy is True

    @pytest.mark.asyncio
    async def test_failed_record_is_not_retried(self, queue, remote):
        bad = queue.enqueue("orders:insert", [insert_op(id="1")])
        remote.errors = [RemoteStoreError("400 invalid input syntax", status_code=400)]
        await queue.flush()
        calls = len(remote.calls)

        result = await queue.flush()

        assert result.attempted == 0
        assert len(remote.calls) == calls
        assert queue.get(bad).status == "failed"

    @pytest.mark.asyncio
    async def test_breaker_open_skips_flush(self, queue, remote, health):
        queue.enqueue("orders:insert", [insert_op(id="1")])
        health.mark_failure(Exception("fetch failed"))

        result = await queue.flush()

        assert result.skipped is True
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_empty_queue_marks_breaker_healthy(self, queue, health, clock):
        health.mark_failure(Exception("fetch failed"))
        clock.advance(seconds=30)

        result = await queue.flush()

        assert result.attempted == 0
        assert health.healthy is True

    @pytest.mark.asyncio
    async def test_concurrent_flushes_share_one_run(self, queue, remote):
        queue.enqueue("orders:insert", [insert_op(id="1")])
        remote.gate = asyncio.Event()

        first = asyncio.create_task(queue.flush())
        second = asyncio.create_task(queue.flush())
        await asyncio.sleep(0.01)
        assert queue.flush_in_progress is True

        remote.gate.set()
        results = await asyncio.gather(first, second)

        assert results[0] is results[1]
        assert len(remote.calls) == 1
        assert queue.flush_in_progress is False

    @pytest.mark.asyncio
    async def test_hung_remote_times_out_as_network_error(self, remote, health, session_factory, clock):
        queue = PendingOperationQueue(
            remote, health, session_factory=session_factory, operation_timeout=0.05, clock=clock
        )
        record_id = queue.enqueue("orders:insert", [insert_op(id="1")])
        remote.gate = asyncio.Event()

        result = await queue.flush()

        assert result.requeued == 1
        assert queue.get(record_id).status == "pending"
        assert health.healthy is False

    @pytest.mark.asyncio
    async def test_batch_size_limits_one_flush(self, remote, health, session_factory, clock):
        queue = PendingOperationQueue(remote, health, session_factory=session_factory, batch_size=2, clock=clock)
        for ticket in ("1", "2", "3"):
            queue.enqueue("orders:insert", [insert_op(id=ticket)])

        first = await queue.flush()
        second = await queue.flush()

        assert first.attempted == 2
        assert second.attempted == 1
        assert inserted_ids(remote) == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_interrupted_syncing_record_is_replayed(self, queue, remote, session_factory):
        record_id = queue.enqueue("orders:insert", [insert_op(id="1")])
        with session_factory() as session:
            session.get(PendingQueueRecord, record_id).status = "syncing"
            session.commit()

        result = await queue.flush()

        assert result.synced == 1
        assert queue.get(record_id).status == "synced"

    @pytest.mark.asyncio
    async def test_unreadable_payload_marks_failed(self, queue, remote, session_factory, clock):
        with session_factory() as session:
            session.add(PendingQueueRecord(
                id="corrupt", scope="orders:insert", payload="{not json", status="pending",
                retry_count=0, sequence=1, created_at=clock.now, updated_at=clock.now,
            ))
            session.commit()

        result = await queue.flush()

        assert result.failed == 1
        assert queue.get("corrupt").status == "failed"
        assert "Unreadable payload" in queue.get("corrupt").last_error
        assert remote.calls == []


class TestOperatorQueries:
    """Inspection and cleanup used by the API and the CLI."""

    def test_list_records_newest_first(self, queue, clock):
        first = queue.enqueue("orders:insert", [insert_op(id="1")])
        clock.advance(minutes=1)
        second = queue.enqueue("orders:insert", [insert_op(id="2")])

        assert [r.id for r in queue.list_records()] == [second, first]

    @pytest.mark.asyncio
    async def test_counts_and_status_filter(self, queue, remote):
        queue.enqueue("orders:insert", [insert_op(id="1")])
        queue.enqueue("orders:insert", [insert_op(id="2")])
        await queue.flush()
        queue.enqueue("orders:insert", [insert_op(id="3")])

        assert queue.counts() == {"pending": 1, "syncing": 0, "synced": 2, "failed": 0}
        assert len(queue.list_records("synced")) == 2

    @pytest.mark.asyncio
    async def test_has_backlog(self, queue, remote):
        assert queue.has_backlog() is False
        queue.enqueue("orders:insert", [insert_op(id="1")])
        assert queue.has_backlog() is True

        await queue.flush()

        assert queue.has_backlog() is False

    def test_delete(self, queue):
        record_id = queue.enqueue("orders:insert", [insert_op(id="1")])
        assert queue.delete(record_id) is True
        assert queue.delete(record_id) is False
        assert queue.get(record_id) is None

    @pytest.mark.asyncio
    async def test_clear_by_status(self, queue, remote):
        queue.enqueue("orders:insert", [insert_op(id="1")])
        await queue.flush()
        queue.enqueue("orders:insert", [insert_op(id="2")])

        assert queue.clear("synced") == 1
        assert queue.counts()["pending"] == 1
        assert queue.clear() == 1
        assert queue.list_records() == []
