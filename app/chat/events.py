"""
Chat event models.

Inbound events arrive from a connected session as ``{"event": name, "data": {...}}``
and are validated into a closed set of variants discriminated on ``event``.
Outbound events are what the coordinator delivers back to sessions.

Example inbound frame:
{
    "event": "send_message",
    "data": {"room_id": "s1_v1", "sender_name": "Asha", "role": "vendor", "body": "Hello"}
}
"""
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from app.schemas.message import SYSTEM_SENDER, ChatMessage, Role


# =====================
# Inbound (session -> coordinator)
# =====================

class JoinRoom(BaseModel):
    event: Literal["join_room"] = "join_room"
    room_id: str = Field(..., min_length=1, max_length=255)
    role: Role


class SendMessage(BaseModel):
    event: Literal["send_message"] = "send_message"
    room_id: str = Field(..., min_length=1, max_length=255)
    sender_name: str = Field(..., min_length=1, max_length=255)
    role: Role
    body: str = Field(..., min_length=1, max_length=4000)

    @field_validator("body")
    @classmethod
    def validate_body(cls, v: str) -> str:
        """Whitespace-only messages are rejected at the boundary"""
        if not v.strip():
            raise ValueError("Message body must not be empty")
        return v


class JoinNotificationRoom(BaseModel):
    event: Literal["join_notification_room"] = "join_notification_room"
    user_id: str = Field(..., min_length=1, max_length=255)
    role: Role


ClientEvent = Annotated[
    Union[JoinRoom, SendMessage, JoinNotificationRoom],
    Field(discriminator="event"),
]

_client_event_adapter = TypeAdapter(ClientEvent)


def parse_client_event(frame: Dict[str, Any]) -> Union[JoinRoom, SendMessage, JoinNotificationRoom]:
    """
    Validate a raw inbound frame.

    Raises:
        pydantic.ValidationError: On unknown event names or bad payloads
    """
    data = frame.get("data") or {}
    if not isinstance(data, dict):
        data = {}
    return _client_event_adapter.validate_python({**data, "event": frame.get("event")})


# =====================
# Outbound (coordinator -> session)
# =====================

class OutboundEvent(BaseModel):
    """Base for events delivered to sessions."""
    name: ClassVar[str]

    def payload(self) -> Any:
        return self.model_dump(mode="json")

    def to_frame(self) -> Dict[str, Any]:
        return {"event": self.name, "data": self.payload()}


class PreviousMessages(OutboundEvent):
    name: ClassVar[str] = "previous_messages"
    messages: List[ChatMessage] = Field(default_factory=list)

    def payload(self) -> Any:
        return [m.model_dump(mode="json") for m in self.messages]


class ReceiveMessage(OutboundEvent):
    name: ClassVar[str] = "receive_message"
    message: ChatMessage

    def payload(self) -> Any:
        return self.message.model_dump(mode="json")


class ChatClosed(OutboundEvent):
    """Synthetic, never persisted. Carries the deletion reason so clients can offer 'request again'."""
    name: ClassVar[str] = "chat_closed"
    room_id: str
    sender: str = SYSTEM_SENDER
    closed_by: Optional[str] = None
    reason: Dict[str, Any] = Field(default_factory=dict)

    def payload(self) -> Any:
        return {
            **self.reason,
            "room_id": self.room_id,
            "sender": self.sender,
            "closed_by": self.closed_by,
        }


class SupplierJoined(OutboundEvent):
    name: ClassVar[str] = "supplier_joined"
    room_id: str
    message: str = "Supplier has joined the chat. Messaging is now enabled."


class RoomJoined(OutboundEvent):
    name: ClassVar[str] = "room_joined"
    room_id: str
    closed: bool
    messaging_enabled: bool


class NewRequestNotification(OutboundEvent):
    name: ClassVar[str] = "new_request_notification"
    order: Dict[str, Any]
    message: str


class ErrorEvent(OutboundEvent):
    name: ClassVar[str] = "error"
    message: str
    details: List[Dict[str, Any]] = Field(default_factory=list)
