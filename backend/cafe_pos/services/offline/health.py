"""
Connectivity Health Tracker

Single source of truth for "is it worth trying the remote store right now".

- A network-classified failure opens the breaker (``healthy = False``).
- While open, ``should_prefer_remote()`` is false until ``retry_delay`` has
  elapsed since the last failure; after that every call probes the remote
  again. There is no exponential backoff.
- Any successful remote call closes the breaker.

httpx transport errors and timeouts are always transient. Anything else
goes through a substring heuristic over the exception text. An unrelated
error whose message mentions e.g. "timeout" is treated as transient and
retried; a genuine outage with an unrecognised message is
treated as a permanent failure for that one record. Pass a different
``is_transient`` predicate to change this per deployment.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from cafe_pos.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)

# Matched case-insensitively against "<ExceptionType>: <message>"
NETWORK_ERROR_HINTS = (
    "fetch failed",
    "failed to fetch",
    "network",
    "econnrefused",
    "enotfound",
    "etimedout",
    "eai_again",
    "connection refused",
    "connection reset",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname provided",
    "timed out",
    "timeout",
)

DEFAULT_RETRY_DELAY = timedelta(seconds=30)


def describe_error(error: object) -> str:
    """Human-readable one-line description of an error."""
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, BaseException):
        return f"{type(error).__name__}: {error}"
    message = getattr(error, "message", None)
    if isinstance(message, str):
        return message
    return repr(error)


def is_likely_network_error(error: object, hints=NETWORK_ERROR_HINTS) -> bool:
    """Default transient-error predicate.

    Any httpx transport failure counts regardless of its wording, e.g.
    ``ConnectError("All connection attempts failed")``.
    """
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    message = describe_error(error).lower()
    return any(hint in message for hint in hints)


class ConnectivityHealth:
    """Breaker state for the remote store.

    One instance is shared by everything in the process that talks to the
    remote; it is created at startup and passed in explicitly.
    """

    def __init__(
        self,
        retry_delay: timedelta = DEFAULT_RETRY_DELAY,
        *,
        clock: Clock = utc_now,
        is_transient: Callable[[object], bool] = is_likely_network_error,
    ):
        self.retry_delay = retry_delay
        self._clock = clock
        self._is_transient = is_transient
        self._lock = threading.Lock()
        self._healthy = True
        self._last_failure_at: Optional[datetime] = None

    @property
    def healthy(self) -> bool:
        return self._healthy

    @property
    def last_failure_at(self) -> Optional[datetime]:
        return self._last_failure_at

    def mark_healthy(self) -> None:
        with self._lock:
            if not self._healthy:
                logger.info("Remote store reachable again, breaker closed")
            self._healthy = True

    def mark_failure(self, error: object) -> None:
        with self._lock:
            self._healthy = False
            self._last_failure_at = self._clock()
        logger.warning(f"Remote store marked as offline: {describe_error(error)}")

    def should_prefer_remote(self) -> bool:
        with self._lock:
            if self._healthy:
                return True
            if self._last_failure_at is None:
                return True
            return self._clock() - self._last_failure_at >= self.retry_delay

    def classify_error(self, error: object) -> bool:
        """True when ``error`` looks transient (network), False when logical."""
        return bool(self._is_transient(error))

    def reset(self) -> None:
        with self._lock:
            self._healthy = True
            self._last_failure_at = None

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "healthy": self._healthy,
                "last_failure_at": self._last_failure_at,
                "retry_delay_seconds": self.retry_delay.total_seconds(),
            }
