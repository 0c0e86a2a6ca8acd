"""Status rules for orders and reservations.

There is no scheduler moving tickets through their lifecycle. Every read
passes the fetched rows through these functions, which derive the status a
record *should* have at ``now`` and annotate/purge old history. Nothing is
written back.

Orders:
    pending, after 23:39:00.000 local on the ticket's day -> completed
    pending, after 23:59:59.999 local on the ticket's day -> past
Reservations:
    completed stays completed, cancelled -> past,
    anything else after end of the reserved day -> past, otherwise pending

Because the production cutoff comes before the end of day, a pending order
past its cutoff always becomes ``completed``; the ``past`` branch only
matters for records whose timestamps cannot be parsed consistently.

All wall-clock rules run in the configured local zone. Naive timestamps are
local wall-clock time; ``reservationDate``/``reservationTime`` are never UTC.
"""

from datetime import datetime, time, timedelta, tzinfo
from typing import List, Optional, Sequence, TypeVar, Union
from zoneinfo import ZoneInfo

from cafe_pos.core.clock import utc_now
from cafe_pos.core.config import settings
from cafe_pos.schemas.status import OrderSnapshot, ReservationSnapshot, StatusTracked

PRODUCTION_CUTOFF = time(23, 39, 0, 0)
END_OF_DAY = time(23, 59, 59, 999000)
HIDE_THRESHOLD = timedelta(days=3)
PURGE_THRESHOLD = timedelta(days=365)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_PAST = "past"

T = TypeVar("T", bound=StatusTracked)


def local_zone(tz: Optional[tzinfo] = None) -> tzinfo:
    return tz or ZoneInfo(settings.timezone)


def _localize(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def _resolve_now(now: Optional[datetime], tz: tzinfo) -> datetime:
    return _localize(now or utc_now(), tz)


def parse_timestamp(value: Union[datetime, str, None], tz: tzinfo) -> Optional[datetime]:
    """Parse an ISO timestamp into the local zone; ``None`` if unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _localize(value, tz)
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _localize(parsed, tz)


def parse_local_date(date_str: str, time_str: Optional[str], tz: tzinfo) -> Optional[datetime]:
    """Build a local wall-clock datetime from ``YYYY-MM-DD`` and ``HH:MM[:SS]``."""
    parts = date_str.strip().split("-")
    if len(parts) != 3:
        return None
    try:
        year, month, day = (int(p) for p in parts)
    except ValueError:
        return None

    clock_parts = []
    for raw in (time_str or "").split(":")[:3]:
        try:
            clock_parts.append(int(raw))
        except ValueError:
            clock_parts.append(0)
    hour, minute, second = (clock_parts + [0, 0, 0])[:3]

    try:
        return datetime(year, month, day, hour, minute, second, tzinfo=tz)
    except ValueError:
        return None


def _at(moment: datetime, time_of_day: time) -> datetime:
    return moment.replace(
        hour=time_of_day.hour,
        minute=time_of_day.minute,
        second=time_of_day.second,
        microsecond=time_of_day.microsecond,
    )


def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _order_anchor(order: OrderSnapshot, tz: tzinfo) -> Optional[datetime]:
    return parse_timestamp(_first_present(order.created_at, order.updated_at), tz)


def _reservation_cutoff(reservation: ReservationSnapshot, tz: tzinfo) -> Optional[datetime]:
    if reservation.reservation_date:
        scheduled = parse_local_date(reservation.reservation_date, reservation.reservation_time, tz)
        if scheduled is not None:
            return _at(scheduled, END_OF_DAY)
    anchor = parse_timestamp(_first_present(reservation.created_at, reservation.updated_at), tz)
    return _at(anchor, END_OF_DAY) if anchor else None


def derive_order_status(
    order: OrderSnapshot, now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> str:
    tz = local_zone(tz)
    now = _resolve_now(now, tz)
    current = order.status or STATUS_PENDING
    if current != STATUS_PENDING:
        return current

    anchor = _order_anchor(order, tz)
    if anchor is None:
        return STATUS_PENDING
    if now > _at(anchor, PRODUCTION_CUTOFF):
        return STATUS_COMPLETED
    if now > _at(anchor, END_OF_DAY):
        return STATUS_PAST
    return STATUS_PENDING


def derive_reservation_status(
    reservation: ReservationSnapshot, now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> str:
    tz = local_zone(tz)
    now = _resolve_now(now, tz)
    status = (reservation.status or STATUS_PENDING).lower()
    if status == STATUS_COMPLETED:
        return STATUS_COMPLETED
    if status == STATUS_CANCELLED:
        return STATUS_PAST

    cutoff = _reservation_cutoff(reservation, tz)
    if cutoff is not None and now > cutoff:
        return STATUS_PAST
    return STATUS_PENDING


def _with_status(record: T, status: str) -> T:
    if record.status == status:
        return record
    return record.model_copy(update={"status": status})


def apply_order_status_rules(
    orders: Sequence[OrderSnapshot], now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> List[OrderSnapshot]:
    tz = local_zone(tz)
    now = _resolve_now(now, tz)
    return [_with_status(order, derive_order_status(order, now, tz)) for order in orders]


def apply_reservation_status_rules(
    reservations: Sequence[ReservationSnapshot],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[ReservationSnapshot]:
    tz = local_zone(tz)
    now = _resolve_now(now, tz)
    return [
        _with_status(reservation, derive_reservation_status(reservation, now, tz))
        for reservation in reservations
    ]


def _age_exceeds(record: StatusTracked, threshold: timedelta, now: datetime, tz: tzinfo) -> bool:
    last_touched = parse_timestamp(_first_present(record.updated_at, record.created_at), tz)
    if last_touched is None:
        return False
    return now - last_touched > threshold


def _is_archived_order(order: OrderSnapshot) -> bool:
    return order.status == STATUS_PAST


def _is_archived_reservation(reservation: ReservationSnapshot) -> bool:
    return reservation.status in (STATUS_PAST, STATUS_CANCELLED)


def _hide_and_purge(records, is_archived, now: datetime, tz: tzinfo):
    visible = []
    for record in records:
        archived = is_archived(record)
        if archived and _age_exceeds(record, PURGE_THRESHOLD, now, tz):
            continue
        hidden = archived and _age_exceeds(record, HIDE_THRESHOLD, now, tz)
        if record.is_hidden != hidden:
            record = record.model_copy(update={"is_hidden": hidden})
        visible.append(record)
    return visible


def purge_expired_past_orders(
    orders: Sequence[OrderSnapshot], now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> List[OrderSnapshot]:
    """Flag past orders older than 3 days as hidden; drop those older than a year."""
    tz = local_zone(tz)
    return _hide_and_purge(orders, _is_archived_order, _resolve_now(now, tz), tz)


def purge_expired_past_reservations(
    reservations: Sequence[ReservationSnapshot],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[ReservationSnapshot]:
    """Same as ``purge_expired_past_orders`` for past and cancelled reservations."""
    tz = local_zone(tz)
    return _hide_and_purge(reservations, _is_archived_reservation, _resolve_now(now, tz), tz)


def project_orders(
    orders: Sequence[OrderSnapshot], now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> List[OrderSnapshot]:
    """Status rules followed by the hide/purge pass, as served to clients."""
    tz = local_zone(tz)
    now = _resolve_now(now, tz)
    return purge_expired_past_orders(apply_order_status_rules(orders, now, tz), now, tz)


def project_reservations(
    reservations: Sequence[ReservationSnapshot],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[ReservationSnapshot]:
    tz = local_zone(tz)
    now = _resolve_now(now, tz)
    return purge_expired_past_reservations(
        apply_reservation_status_rules(reservations, now, tz), now, tz
    )
