# app/schemas/order.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CLOSED = "closed"


class Order(BaseModel):
    """A vendor's purchase request to a supplier for one inventory item."""
    id: str
    vendor_id: str
    supplier_id: str
    inventory_item_id: str
    room_id: str
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(default_factory=_utc_now)

    # Display fields supplied by the catalog/user services
    vendor_name: Optional[str] = None
    item_name: Optional[str] = None

    model_config = {"from_attributes": True, "use_enum_values": True}


class OrderCreate(BaseModel):
    supplier_id: str = Field(..., min_length=1, max_length=255)
    inventory_item_id: str = Field(..., min_length=1, max_length=255)
    # Optional client-computed room id; must match the derived identity
    room_id: Optional[str] = Field(None, max_length=255)
    vendor_name: Optional[str] = Field(None, max_length=255)
    item_name: Optional[str] = Field(None, max_length=255)

    @field_validator("supplier_id", "inventory_item_id")
    @classmethod
    def validate_ids(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("ID must be a non-empty string")
        return v.strip()


class OrderCreateResponse(BaseModel):
    message: str
    order: Order
    created: bool


class OrderList(BaseModel):
    orders: List[Order]


class OrderDeleteResponse(BaseModel):
    message: str = "Order deleted successfully"
