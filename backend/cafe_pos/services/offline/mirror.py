"""Local mirror of remote rows.

Every remote write (and every successful remote read) is copied here so
that reads served from the local fallback stay consistent with what the
user just saved. Rows are stored as JSON documents keyed by table name and
conflict column value; filtering happens in Python, which is fine for the
few hundred rows a single café keeps hot.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe_pos.db.session import SessionLocal
from cafe_pos.models.local_mirror import MirrorRow
from cafe_pos.schemas.pending import to_json_compatible

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def _same(left: Any, right: Any) -> bool:
    return left == right or (left is not None and right is not None and str(left) == str(right))


def row_matches(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    """Equality per column; list/tuple/set values mean ``IN``."""
    for column, expected in (filters or {}).items():
        actual = row.get(column)
        if isinstance(expected, (list, tuple, set)):
            if not any(_same(actual, candidate) for candidate in expected):
                return False
        elif not _same(actual, expected):
            return False
    return True


def _sort_key(value: Any):
    # None last, numbers before strings, so mixed columns never raise
    return (value is None, isinstance(value, str), value if value is not None else 0)


def row_key(row: Mapping[str, Any], key_column: str = "id") -> Optional[str]:
    columns = [c.strip() for c in key_column.split(",") if c.strip()]
    values = [row.get(column) for column in columns]
    if not values or any(v is None for v in values):
        return None
    return "|".join(str(v) for v in values)


class LocalMirror:
    """Read-through cache of remote rows in the local store."""

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    def _rows_for(self, session: Session, table: str) -> Iterable[MirrorRow]:
        return session.scalars(select(MirrorRow).where(MirrorRow.table_name == table))

    def upsert(self, table: str, rows: Sequence[Row], key_column: Optional[str] = None) -> List[Row]:
        """Store rows, merging into existing ones with the same key."""
        stored: List[Row] = []
        with self._session_factory() as session:
            for row in rows:
                data = to_json_compatible(dict(row))
                key = row_key(data, key_column or "id") or str(uuid.uuid4())
                existing = session.get(MirrorRow, (table, key))
                if existing is None:
                    session.add(MirrorRow(table_name=table, row_key=key, data=data))
                else:
                    data = {**existing.data, **data}
                    existing.data = data
                stored.append(data)
            session.commit()
        return stored

    def update(self, table: str, patch: Row, match: Mapping[str, Any]) -> List[Row]:
        patch = to_json_compatible(dict(patch))
        updated: List[Row] = []
        with self._session_factory() as session:
            for mirror_row in self._rows_for(session, table):
                if row_matches(mirror_row.data, match):
                    mirror_row.data = {**mirror_row.data, **patch}
                    updated.append(mirror_row.data)
            session.commit()
        return updated

    def delete(self, table: str, match: Mapping[str, Any]) -> List[Row]:
        removed: List[Row] = []
        with self._session_factory() as session:
            for mirror_row in list(self._rows_for(session, table)):
                if row_matches(mirror_row.data, match):
                    removed.append(mirror_row.data)
                    session.delete(mirror_row)
            session.commit()
        return removed

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        with self._session_factory() as session:
            rows = [dict(r.data) for r in self._rows_for(session, table) if row_matches(r.data, filters)]
        if order_by:
            rows.sort(key=lambda r: _sort_key(r.get(order_by)), reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return rows
