"""
Compliance Service - pest control certificates

Health inspectors require a fumigation certificate at least every
``pest_control_alert_days`` days. The dashboard shows the latest service and
an alert once renewal is due.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from cafe_pos.core.clock import utc_now
from cafe_pos.schemas.compliance import PestControlCreate, PestControlRecord, PestControlStatus

logger = logging.getLogger(__name__)

PEST_CONTROL_SCOPE = "pest_control:insert"

ALERT_NO_RECORDS = "No pest control service on record, schedule one as soon as possible."
ALERT_RENEWAL_REQUIRED = "PEST CONTROL RENEWAL REQUIRED - HEALTH AUTHORITY REQUIREMENT"
ALERT_OVERDUE = "Pest control service overdue, reschedule the provider."
ALERT_DUE_SOON = "Pest control service due soon, book a preventive visit."

# Days before the deadline when the "due soon" warning starts
DUE_SOON_WINDOW_DAYS = 10


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def build_pest_control_row(
    body: PestControlCreate, *, record_id: Optional[str] = None, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Row written to the remote ``pest_control_logs`` table.

    Ids and ``createdAt`` are assigned here so an offline write can be
    mirrored locally and replayed later without changing identity.
    """
    created_at = now or utc_now()
    return {
        "id": record_id or str(uuid.uuid4()),
        "service_date": _as_aware(body.service_date).isoformat(),
        "provider_name": body.provider_name,
        "certificate_number": body.certificate_number,
        "next_service_date": (
            _as_aware(body.next_service_date).isoformat() if body.next_service_date else None
        ),
        "staffId": body.staff_id,
        "observations": body.observations,
        "createdAt": created_at.isoformat(),
    }


def normalize_pest_control_row(row: Dict[str, Any]) -> PestControlRecord:
    """Accept both snake_case and camelCase column spellings."""
    return PestControlRecord(
        id=str(row.get("id") or ""),
        service_date=_first(row, "service_date", "serviceDate"),
        provider_name=_first(row, "provider_name", "providerName"),
        certificate_number=_first(row, "certificate_number", "certificateNumber"),
        next_service_date=_first(row, "next_service_date", "nextServiceDate"),
        staff_id=_first(row, "staffId", "staff_id"),
        observations=row.get("observations"),
        created_at=_first(row, "createdAt", "created_at") or utc_now(),
    )


def build_alert_message(
    days_since: Optional[int],
    next_service_date: Optional[datetime],
    *,
    alert_days: int,
    now: Optional[datetime] = None,
) -> Optional[str]:
    now = now or utc_now()
    if days_since is None:
        return ALERT_NO_RECORDS
    if days_since > alert_days:
        return ALERT_RENEWAL_REQUIRED
    if next_service_date is not None and _as_aware(next_service_date) <= now:
        return ALERT_OVERDUE
    if days_since >= alert_days - DUE_SOON_WINDOW_DAYS:
        return ALERT_DUE_SOON
    return None


def summarize_pest_control(
    rows: Iterable[Dict[str, Any]],
    *,
    alert_days: int,
    now: Optional[datetime] = None,
    source: str = "remote",
) -> PestControlStatus:
    """Dashboard summary built from the most recent service record."""
    now = now or utc_now()
    records = [normalize_pest_control_row(row) for row in rows]
    latest = max(records, key=lambda r: _as_aware(r.service_date), default=None)

    days_since = None
    if latest is not None:
        days_since = (now - _as_aware(latest.service_date)).days

    message = build_alert_message(
        days_since,
        latest.next_service_date if latest else None,
        alert_days=alert_days,
        now=now,
    )
    return PestControlStatus(
        latest=latest,
        days_since=days_since,
        alert_message=message,
        alert=message == ALERT_RENEWAL_REQUIRED,
        source=source,
    )
