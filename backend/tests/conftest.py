"""Pytest configuration and fixtures."""

import asyncio
import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional

import httpx
import pytest

# Keep the module-level engine off the filesystem
os.environ.setdefault("LOCAL_DATABASE_URL", "sqlite:///:memory:")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cafe_pos.db.base import Base
from cafe_pos.main import app
# Import all models to ensure they're registered with Base.metadata
from cafe_pos.models import *  # noqa: F401,F403
from cafe_pos.services.offline import (
    ConnectivityHealth,
    FallbackDatabase,
    LocalMirror,
    PendingOperationQueue,
)
from cafe_pos.services.offline.mirror import row_matches
from cafe_pos.services.remote_store import RemoteStore, RemoteStoreError

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 3, 14, 18, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeRemoteStore(RemoteStore):
    """In-memory remote with switchable outages and scripted failures."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.calls: List[tuple] = []
        self.offline = False
        self.errors: List[Optional[BaseException]] = []
        self.gate: Optional[asyncio.Event] = None

    async def _enter(self, op: str, table: str, payload: Any = None) -> None:
        self.calls.append((op, table, payload))
        if self.gate is not None:
            await self.gate.wait()
        # ``None`` entries let scripted calls succeed
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        if self.offline:
            raise httpx.ConnectError("[Errno 111] Connection refused")

    def writes(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "select"]

    async def select(self, table, filters=None, *, columns="*", order_by=None, ascending=True, limit=None):
        await self._enter("select", table, filters)
        rows = [dict(r) for r in self.tables[table] if row_matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=not ascending)
        return rows[:limit] if limit else rows

    async def insert(self, table, rows):
        await self._enter("insert", table, rows)
        for row in rows:
            if any(existing.get("id") == row.get("id") for existing in self.tables[table]):
                raise RemoteStoreError(
                    '409 duplicate key value violates unique constraint "pk"', status_code=409, code="23505"
                )
        self.tables[table].extend(dict(r) for r in rows)
        return [dict(r) for r in rows]

    async def upsert(self, table, rows, on_conflict=None):
        await self._enter("upsert", table, rows)
        key = on_conflict or "id"
        for row in rows:
            for existing in self.tables[table]:
                if existing.get(key) == row.get(key):
                    existing.update(row)
                    break
            else:
                self.tables[table].append(dict(row))
        return [dict(r) for r in rows]

    async def update(self, table, patch, match):
        await self._enter("update", table, (patch, match))
        updated = []
        for row in self.tables[table]:
            if row_matches(row, match):
                row.update(patch)
                updated.append(dict(row))
        return updated

    async def delete(self, table, match):
        await self._enter("delete", table, match)
        removed = [r for r in self.tables[table] if row_matches(r, match)]
        self.tables[table] = [r for r in self.tables[table] if not row_matches(r, match)]
        return removed


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory bound to the in-memory local store."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def health(clock) -> ConnectivityHealth:
    return ConnectivityHealth(timedelta(seconds=30), clock=clock)


@pytest.fixture
def queue(remote, health, session_factory, clock) -> PendingOperationQueue:
    return PendingOperationQueue(
        remote, health, session_factory=session_factory, batch_size=20, operation_timeout=5, clock=clock
    )


@pytest.fixture
def mirror(session_factory) -> LocalMirror:
    return LocalMirror(session_factory)


@pytest.fixture
def database(remote, health, queue, mirror) -> FallbackDatabase:
    return FallbackDatabase(remote, health, queue, mirror)


@pytest.fixture(scope="function")
def client(health, queue, database) -> Generator[TestClient, None, None]:
    """Test client wired to the in-memory services (lifespan is not run)."""
    app.state.health = health
    app.state.queue = queue
    app.state.database = database
    # Disable rate limiters during tests to avoid flaky failures
    from cafe_pos.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    yield TestClient(app, raise_server_exceptions=False)
    global_limiter.enabled = True
