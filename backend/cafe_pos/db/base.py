"""SQLAlchemy declarative base and common utilities for the local store."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from cafe_pos.core.clock import utc_now


class Base(DeclarativeBase):
    """Base class for all local-store models."""

    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps (set from Python, UTC)."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        index=True,
    )
