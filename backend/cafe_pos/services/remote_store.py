"""Remote row-store client (Supabase / PostgREST).

The rest of the backend treats the hosted database as an opaque row store
with ``select/insert/upsert/update/delete``. ``RemoteStore`` is that
contract; ``PostgrestRemoteStore`` implements it over ``httpx``.

Transport problems (connection refused, DNS, timeouts) surface as the
original ``httpx`` exceptions so the breaker can classify them. Any non-2xx
answer from PostgREST is a logical failure and raises ``RemoteStoreError``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class RemoteStoreError(Exception):
    """The remote store answered, but refused the request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details


class RemoteStore(ABC):
    """Async row-store contract used by the queue and the fallback database."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        columns: str = "*",
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Return rows matching ``filters`` (equality, or ``IN`` for lists)."""

    @abstractmethod
    async def insert(self, table: str, rows: Sequence[Row]) -> List[Row]:
        """Insert rows and return them as stored."""

    @abstractmethod
    async def upsert(
        self, table: str, rows: Sequence[Row], on_conflict: Optional[str] = None
    ) -> List[Row]:
        """Insert rows, merging on ``on_conflict`` when they already exist."""

    @abstractmethod
    async def update(self, table: str, patch: Row, match: Mapping[str, Any]) -> List[Row]:
        """Patch rows matching ``match``."""

    @abstractmethod
    async def delete(self, table: str, match: Mapping[str, Any]) -> List[Row]:
        """Delete rows matching ``match``."""

    async def aclose(self) -> None:
        """Release network resources."""


def _format_filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"is.{str(value).lower()}"
    if isinstance(value, (list, tuple, set)):
        items = ",".join(f'"{item}"' if isinstance(item, str) else str(item) for item in value)
        return f"in.({items})"
    return f"eq.{value}"


def build_filter_params(filters: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Translate ``{"status": "pending", "id": [1, 2]}`` into PostgREST params."""
    return {column: _format_filter_value(value) for column, value in (filters or {}).items()}


class PostgrestRemoteStore(RemoteStore):
    """PostgREST client over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        schema: str = "public",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._schema = schema
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept-Profile": self._schema,
            "Content-Profile": self._schema,
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> List[Row]:
        resp = await self._client.request(
            method,
            self._url(table),
            params=params,
            json=json,
            headers=self._headers(prefer),
        )
        if resp.is_error:
            raise self._error_from_response(resp)
        if not resp.content:
            return []
        body = resp.json()
        if isinstance(body, list):
            return body
        return [body] if body else []

    @staticmethod
    def _error_from_response(resp: httpx.Response) -> RemoteStoreError:
        code = None
        details = None
        message = resp.text or resp.reason_phrase
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or message
            code = body.get("code")
            details = body.get("details") or body.get("hint")
        logger.debug(f"PostgREST {resp.request.method} {resp.request.url} -> {resp.status_code}: {message}")
        return RemoteStoreError(
            f"{resp.status_code} {message}",
            status_code=resp.status_code,
            code=code,
            details=details,
        )

    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        columns: str = "*",
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        params = build_filter_params(filters)
        params["select"] = columns
        if order_by:
            params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"
        if limit:
            params["limit"] = str(limit)
        return await self._request("GET", table, params=params)

    async def insert(self, table: str, rows: Sequence[Row]) -> List[Row]:
        return await self._request(
            "POST", table, json=list(rows), prefer="return=representation"
        )

    async def upsert(
        self, table: str, rows: Sequence[Row], on_conflict: Optional[str] = None
    ) -> List[Row]:
        params = {"on_conflict": on_conflict} if on_conflict else None
        return await self._request(
            "POST",
            table,
            params=params,
            json=list(rows),
            prefer="resolution=merge-duplicates,return=representation",
        )

    async def update(self, table: str, patch: Row, match: Mapping[str, Any]) -> List[Row]:
        return await self._request(
            "PATCH",
            table,
            params=build_filter_params(match),
            json=patch,
            prefer="return=representation",
        )

    async def delete(self, table: str, match: Mapping[str, Any]) -> List[Row]:
        return await self._request(
            "DELETE",
            table,
            params=build_filter_params(match),
            prefer="return=representation",
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class UnconfiguredRemoteStore(RemoteStore):
    """Stand-in used when no remote URL is configured.

    Every call fails with a network-style error, so the breaker keeps the
    backend on the local fallback and writes accumulate in the queue.
    """

    def _unreachable(self) -> httpx.ConnectError:
        return httpx.ConnectError("network unavailable: remote store is not configured")

    async def select(self, table, filters=None, *, columns="*", order_by=None, ascending=True, limit=None):
        raise self._unreachable()

    async def insert(self, table, rows):
        raise self._unreachable()

    async def upsert(self, table, rows, on_conflict=None):
        raise self._unreachable()

    async def update(self, table, patch, match):
        raise self._unreachable()

    async def delete(self, table, match):
        raise self._unreachable()
