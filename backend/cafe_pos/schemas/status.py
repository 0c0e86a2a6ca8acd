"""Order and reservation snapshots consumed by the status rules.

Rows come straight from the remote store (or the local mirror) with
camelCase column names; unknown columns are kept untouched so the
projection can hand the record back to the client as-is.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Timestamps stay as received when they are not valid ISO strings;
# the status rules treat unparseable values as missing.
Timestamp = Optional[Union[datetime, str]]


class StatusTracked(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: Optional[Union[int, str]] = None
    status: Optional[str] = None
    created_at: Timestamp = None
    updated_at: Timestamp = None
    is_hidden: bool = False


class OrderSnapshot(StatusTracked):
    """A ticket as read from the ``orders`` table."""


class ReservationSnapshot(StatusTracked):
    """A reservation; the scheduled slot is local wall-clock time."""

    reservation_date: Optional[str] = None  # YYYY-MM-DD
    reservation_time: Optional[str] = None  # HH:MM[:SS]
