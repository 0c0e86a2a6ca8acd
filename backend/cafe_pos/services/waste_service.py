"""Waste log rows: building new entries and reading stored ones."""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from cafe_pos.core.clock import utc_now
from cafe_pos.schemas.waste import WasteLogCreate, WasteLogRecord

WASTE_LOG_SCOPE = "waste_logs:insert"
RECENT_WASTE_LOGS = 15


def build_waste_row(
    body: WasteLogCreate, *, record_id: Optional[str] = None, now: Optional[datetime] = None
) -> Dict[str, Any]:
    return {
        "id": record_id or str(uuid.uuid4()),
        "organicBeveragesKg": body.organic_beverages,
        "organicFoodsKg": body.organic_foods,
        "inorganicKg": body.inorganic,
        "trashRemoved": body.trash_removed,
        "binsWashed": body.bins_washed,
        "branchId": body.branch_id,
        "staffId": body.staff_id,
        "createdAt": (now or utc_now()).isoformat(),
    }


def normalize_waste_row(row: Dict[str, Any]) -> WasteLogRecord:
    """Accept both camelCase and snake_case column spellings."""

    def pick(camel: str, snake: str, default: Any = None) -> Any:
        value = row.get(camel)
        if value is None:
            value = row.get(snake)
        return default if value is None else value

    return WasteLogRecord(
        id=str(row.get("id") or ""),
        organic_beverages_kg=float(pick("organicBeveragesKg", "organic_beverages_kg", 0)),
        organic_foods_kg=float(pick("organicFoodsKg", "organic_foods_kg", 0)),
        inorganic_kg=float(pick("inorganicKg", "inorganic_kg", 0)),
        trash_removed=bool(pick("trashRemoved", "trash_removed", False)),
        bins_washed=bool(pick("binsWashed", "bins_washed", False)),
        branch_id=pick("branchId", "branch_id"),
        staff_id=pick("staffId", "staff_id"),
        created_at=pick("createdAt", "created_at") or utc_now(),
    )
