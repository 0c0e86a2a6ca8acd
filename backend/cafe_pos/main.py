"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from cafe_pos.api.routes import api_router
from cafe_pos.core.config import settings
from cafe_pos.core.rate_limit import limiter
from cafe_pos.db.session import init_local_store
from cafe_pos.services.offline import (
    ConnectivityHealth,
    FallbackDatabase,
    LocalMirror,
    PendingOperationQueue,
)
from cafe_pos.services.remote_store import PostgrestRemoteStore, RemoteStore, UnconfiguredRemoteStore

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    import json as _json
    import sys

    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return _json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            })

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)

# httpx logs every request at INFO; keep it for debug sessions only
logging.getLogger("httpx").setLevel(logging.DEBUG if settings.debug else logging.WARNING)


def build_remote_store() -> RemoteStore:
    if settings.remote_configured:
        return PostgrestRemoteStore(
            settings.remote_url,
            settings.remote_api_key,
            schema=settings.remote_schema,
            timeout=settings.remote_operation_timeout_seconds,
        )
    logger.warning("REMOTE_URL / REMOTE_API_KEY not set - running local-only, writes will queue")
    return UnconfiguredRemoteStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Cafe POS backend")

    init_local_store()

    remote = build_remote_store()
    health = ConnectivityHealth(timedelta(seconds=settings.remote_retry_delay_seconds))
    queue = PendingOperationQueue(
        remote,
        health,
        batch_size=settings.pending_sync_batch_size,
        operation_timeout=settings.remote_operation_timeout_seconds,
    )
    app.state.health = health
    app.state.queue = queue
    app.state.database = FallbackDatabase(remote, health, queue, LocalMirror())

    # Replay writes left over from the previous run
    result = await queue.flush()
    if result.attempted:
        logger.info(f"Startup sync: {result.synced} synced, {result.requeued} still pending")

    yield

    await remote.aclose()
    logger.info("Shutting down Cafe POS backend")


app = FastAPI(
    title="Cafe POS",
    description="Point-of-sale backend with offline write queue",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,  # Cache preflight for 10 minutes
)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic liveness check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}
