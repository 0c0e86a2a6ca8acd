"""Offline-write resilience: breaker, pending queue, mirror and fallback facade."""

from cafe_pos.services.offline.health import (
    ConnectivityHealth,
    NETWORK_ERROR_HINTS,
    describe_error,
    is_likely_network_error,
)
from cafe_pos.services.offline.queue import FlushResult, PendingOperationQueue
from cafe_pos.services.offline.mirror import LocalMirror
from cafe_pos.services.offline.fallback import DatabaseResult, FallbackDatabase

__all__ = [
    "ConnectivityHealth",
    "NETWORK_ERROR_HINTS",
    "describe_error",
    "is_likely_network_error",
    "FlushResult",
    "PendingOperationQueue",
    "LocalMirror",
    "DatabaseResult",
    "FallbackDatabase",
]
