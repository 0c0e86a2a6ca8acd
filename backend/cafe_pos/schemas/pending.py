"""Pending queue schemas: replayable operations and operator views."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

# Table names end up in URLs and cache keys; keep them to plain identifiers
TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class _TableOperation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    table: str

    @field_validator("table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        if not TABLE_NAME_RE.match(v):
            raise ValueError(f"invalid table name: {v!r}")
        return v


class _RowsOperation(_TableOperation):
    rows: List[Dict[str, Any]] = Field(min_length=1)

    @field_validator("rows", mode="before")
    @classmethod
    def wrap_single_row(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return [v]
        return v


class InsertOperation(_RowsOperation):
    """Insert one or more rows."""

    type: Literal["insert"] = "insert"


class UpsertOperation(_RowsOperation):
    """Insert or merge rows on ``on_conflict`` (primary key when omitted)."""

    type: Literal["upsert"] = "upsert"
    on_conflict: Optional[str] = None


class UpdateOperation(_TableOperation):
    """Patch every row matching ``match``."""

    type: Literal["update"] = "update"
    patch: Dict[str, Any] = Field(min_length=1)
    match: Dict[str, Any] = Field(min_length=1)


class DeleteOperation(_TableOperation):
    """Delete every row matching ``match``. An empty match is refused."""

    type: Literal["delete"] = "delete"
    match: Dict[str, Any] = Field(min_length=1)


PendingOperation = Annotated[
    Union[InsertOperation, UpsertOperation, UpdateOperation, DeleteOperation],
    Field(discriminator="type"),
]


class PendingPayload(BaseModel):
    """What is stored in ``pos_pending_queue.payload``."""

    operations: List[PendingOperation] = Field(min_length=1)
    # Informational only, never replayed
    context: Optional[Dict[str, Any]] = None


_operations_adapter = TypeAdapter(List[PendingOperation])
_json_adapter = TypeAdapter(Any)


def to_json_compatible(value: Any) -> Any:
    """Dates, decimals and UUIDs become the strings they are sent as."""
    return _json_adapter.dump_python(value, mode="json")


def parse_operations(operations: Sequence[Union[BaseModel, Dict[str, Any]]]) -> List[PendingOperation]:
    """Validate raw dicts (or already-built models) into typed operations.

    Values are normalised to what the remote receives as JSON, so a queued
    operation replays exactly as it would have been sent live. Raises ``pydantic.ValidationError`` for malformed input.
    """
    raw = to_json_compatible(list(operations))
    return _operations_adapter.validate_python(raw)


class PendingRecordOut(BaseModel):
    """Operator view of a queue record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    scope: str
    status: str
    retry_count: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PendingRecordDetail(PendingRecordOut):
    """Queue record including its decoded payload."""

    payload: Optional[PendingPayload] = None
    raw_payload: Optional[str] = None
