"""Order creation schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItemIn(_CamelModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(1, ge=1)
    price: float = Field(0, ge=0)
    name: Optional[str] = None
    size_label: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class OrderTotals(_CamelModel):
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    tip: Optional[float] = None
    total: Optional[float] = None


class OrderCreate(_CamelModel):
    """A ticket rung up at the counter."""

    order_id: Optional[str] = None
    ticket_code: Optional[str] = None
    status: str = "pending"
    currency: str = "MXN"
    payment_method: Optional[str] = None
    user_id: Optional[str] = None
    notes: Optional[str] = None
    items: List[OrderItemIn] = Field(min_length=1)
    totals: Optional[OrderTotals] = None

    @field_validator("order_id", "ticket_code", "payment_method", "user_id", "notes")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class OrderCreated(BaseModel):
    order_id: str
    ticket_code: str
    items: int
    pending_sync: bool = False
    queue_id: Optional[str] = None
