#!/usr/bin/env python3
"""
Inspect and clean the local pending sync queue.

Usage:
    cafe-pos-queue list [--status failed]
    cafe-pos-queue show <id>
    cafe-pos-queue clear <id>
    cafe-pos-queue clear all --force
"""

import argparse
import json
import sys
from typing import List, Optional

from sqlalchemy import Engine, inspect

from cafe_pos.db.session import SessionLocal, engine
from cafe_pos.models.pending_queue import PendingQueueRecord, PendingStatus
from cafe_pos.services.offline import ConnectivityHealth, PendingOperationQueue
from cafe_pos.services.remote_store import UnconfiguredRemoteStore


def format_record(record: PendingQueueRecord) -> str:
    line = (
        f"{record.id} | {record.scope} | {record.status} | retries={record.retry_count} "
        f"| created={record.created_at or '-'} | updated={record.updated_at or '-'}"
    )
    if record.last_error:
        line += f" | lastError={record.last_error}"
    return line


def list_records(queue: PendingOperationQueue, status: Optional[str]) -> int:
    records = queue.list_records(status, limit=10_000)
    if not records:
        print("No pending operations.")
        return 0
    for record in records:
        print(format_record(record))
    return 0


def show_record(queue: PendingOperationQueue, record_id: str) -> int:
    record = queue.get(record_id)
    if record is None:
        print(f"Record {record_id} not found.")
        return 1
    print(format_record(record))
    try:
        print(json.dumps(json.loads(record.payload), indent=2, ensure_ascii=False))
    except ValueError:
        print("Payload is not valid JSON:")
        print(record.payload)
    return 0


def clear_records(queue: PendingOperationQueue, target: str, force: bool) -> int:
    if target == "all":
        if not force:
            print("Refusing to clear the whole queue without --force.")
            return 2
        removed = queue.clear()
        print(f"Removed {removed} record(s).")
        return 0

    if not queue.delete(target):
        print(f"Record {target} not found.")
        return 1
    print(f"Removed record {target}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cafe-pos-queue", description="Inspect the local pending sync queue"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List queue records, most recent first")
    list_cmd.add_argument(
        "--status", choices=[s.value for s in PendingStatus], help="Only records in this status"
    )

    show_cmd = commands.add_parser("show", help="Show one record with its payload")
    show_cmd.add_argument("id")

    clear_cmd = commands.add_parser("clear", help="Remove one record, or all with --force")
    clear_cmd.add_argument("target", metavar="id|all")
    clear_cmd.add_argument("--force", action="store_true", help="Required to clear every record")
    return parser


def main(argv: Optional[List[str]] = None, *, session_factory=SessionLocal, bind: Engine = engine) -> int:
    args = build_parser().parse_args(argv)

    if not inspect(bind).has_table(PendingQueueRecord.__tablename__):
        print(f"Table {PendingQueueRecord.__tablename__} does not exist. Nothing is pending.")
        return 0

    # Operator commands never talk to the remote store
    queue = PendingOperationQueue(
        UnconfiguredRemoteStore(), ConnectivityHealth(), session_factory=session_factory
    )
    if args.command == "list":
        return list_records(queue, args.status)
    if args.command == "show":
        return show_record(queue, args.id)
    return clear_records(queue, args.target, args.force)


if __name__ == "__main__":
    sys.exit(main())
