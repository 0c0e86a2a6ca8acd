"""Request dependencies for the offline-write services.

The breaker, queue and fallback database are created once in the
application lifespan and stored on ``app.state``.
"""

from typing import Annotated, NoReturn

from fastapi import Depends, HTTPException, Request, status
from pydantic import ValidationError

from cafe_pos.services.offline import ConnectivityHealth, DatabaseResult, FallbackDatabase, PendingOperationQueue
from cafe_pos.services.offline.health import describe_error
from cafe_pos.services.remote_store import RemoteStoreError


def get_health(request: Request) -> ConnectivityHealth:
    return request.app.state.health


def get_queue(request: Request) -> PendingOperationQueue:
    return request.app.state.queue


def get_database(request: Request) -> FallbackDatabase:
    return request.app.state.database


HealthTracker = Annotated[ConnectivityHealth, Depends(get_health)]
PendingQueue = Annotated[PendingOperationQueue, Depends(get_queue)]
Database = Annotated[FallbackDatabase, Depends(get_database)]


def raise_for_result(result: DatabaseResult) -> None:
    """Turn a failed facade call into an HTTP error."""
    if result.ok:
        return
    raise_remote_error(result.error)


def raise_remote_error(error: Exception) -> NoReturn:
    if isinstance(error, RemoteStoreError):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": error.message, "code": error.code, "details": error.details},
        )
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=describe_error(error))


def raise_validation_error(error: ValidationError) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=error.errors(include_url=False, include_context=False),
    )
