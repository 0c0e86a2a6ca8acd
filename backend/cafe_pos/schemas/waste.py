"""Waste log schemas (end-of-shift sanitation close)."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

SHIFT_CLOSE_REQUIRED = "Confirm trash removal and bin washing to close the shift."


class WasteLogCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    organic_beverages: float = Field(0, ge=0)
    organic_foods: float = Field(0, ge=0)
    inorganic: float = Field(0, ge=0)
    trash_removed: bool = False
    bins_washed: bool = False
    branch_id: Optional[str] = None
    staff_id: Optional[str] = None

    @model_validator(mode="after")
    def require_shift_close(self) -> "WasteLogCreate":
        if not (self.trash_removed and self.bins_washed):
            raise ValueError(SHIFT_CLOSE_REQUIRED)
        return self


class WasteLogRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    organic_beverages_kg: float = 0
    organic_foods_kg: float = 0
    inorganic_kg: float = 0
    trash_removed: bool = False
    bins_washed: bool = False
    branch_id: Optional[str] = None
    staff_id: Optional[str] = None
    created_at: datetime


class WasteLogList(BaseModel):
    logs: List[WasteLogRecord]
    source: str = "remote"
    fallback_used: bool = False


class WasteLogSaved(BaseModel):
    record: WasteLogRecord
    pending_sync: bool = False
