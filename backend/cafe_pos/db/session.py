"""Local durable store session management."""

from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from cafe_pos.core.config import settings
from cafe_pos.db.base import Base


def build_engine(database_url: str) -> Engine:
    """Create an engine for the local store, handling SQLite specially."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        database = make_url(database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    local_engine = create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
    )

    if database_url.startswith("sqlite"):
        @event.listens_for(local_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # WAL keeps readers going while the flush loop writes
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return local_engine


engine = build_engine(settings.local_database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_local_store(bind: Engine = engine) -> None:
    """Create the queue and mirror tables if they are absent."""
    # Import models so they register with Base.metadata
    import cafe_pos.models  # noqa: F401

    Base.metadata.create_all(bind=bind)
