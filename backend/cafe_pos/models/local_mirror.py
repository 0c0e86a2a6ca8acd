"""Local mirror of remote rows, used for reads while the remote is down."""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from cafe_pos.core.clock import utc_now
from cafe_pos.db.base import Base


class MirrorRow(Base):
    """A cached copy of one remote row, keyed by its conflict column value."""
    __tablename__ = "local_mirror_rows"

    table_name: Mapped[str] = mapped_column(String(120), primary_key=True)
    row_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )
