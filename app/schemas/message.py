# app/schemas/message.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Marketplace participant roles"""
    VENDOR = "vendor"
    SUPPLIER = "supplier"


SYSTEM_SENDER = "System"


class ChatMessage(BaseModel):
    """
    One chat message.

    ``id`` is assigned by the message log on append; a message broadcast
    after a failed append keeps ``id=None``.
    """
    id: Optional[str] = None
    room_id: str
    sender_name: str
    sender_role: Role
    body: str
    timestamp: datetime = Field(default_factory=_utc_now)
    is_read: bool = False

    model_config = {"from_attributes": True, "use_enum_values": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int


class MessageHistoryResponse(BaseModel):
    success: bool = True
    messages: List[ChatMessage]
    pagination: Pagination


class MarkReadResponse(BaseModel):
    success: bool = True
    message: str = "Messages marked as read"
    updated: int = 0


def role_value(role) -> str:
    """Plain string for a Role or role name."""
    return role.value if isinstance(role, Role) else str(role)
