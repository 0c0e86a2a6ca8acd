"""Compliance schemas (pest control service log)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class PestControlCreate(BaseModel):
    """A fumigation certificate captured by staff."""

    service_date: datetime
    provider_name: Optional[str] = None
    certificate_number: Optional[str] = None
    next_service_date: Optional[datetime] = None
    staff_id: Optional[str] = None
    observations: Optional[str] = None

    @field_validator("provider_name", "certificate_number", "observations")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class PestControlRecord(BaseModel):
    id: str
    service_date: datetime
    provider_name: Optional[str] = None
    certificate_number: Optional[str] = None
    next_service_date: Optional[datetime] = None
    staff_id: Optional[str] = None
    observations: Optional[str] = None
    created_at: datetime


class PestControlStatus(BaseModel):
    latest: Optional[PestControlRecord] = None
    days_since: Optional[int] = None
    alert_message: Optional[str] = None
    alert: bool = False
    source: str = "remote"


class PestControlSaved(BaseModel):
    record: PestControlRecord
    pending_sync: bool = False
