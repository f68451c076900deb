"""
Room State Machine

Pure transitions for a single chat room. ``transition(state, signal)`` returns
the next state plus the effects the coordinator must carry out; nothing here
touches a transport or a store, so every lifecycle rule can be unit tested
directly.

    Unseen --join--> Open --close--> Closed --join/send/request_created--> Open

There is no terminal state: a room identity is reusable indefinitely.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from app.chat.events import ChatClosed, OutboundEvent, ReceiveMessage, RoomJoined, SupplierJoined
from app.schemas.message import ChatMessage, Role


class RoomStatus(str, Enum):
    UNSEEN = "unseen"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class RoomState:
    """Transient, in-memory state of one room. Never persisted."""
    room_id: str
    members: FrozenSet[str] = frozenset()
    closed: bool = False
    roles_joined: FrozenSet[str] = frozenset()
    supplier_notice_sent: bool = False

    @property
    def status(self) -> RoomStatus:
        return RoomStatus.CLOSED if self.closed else RoomStatus.OPEN

    def messaging_enabled(self, supplier_join_gate: bool) -> bool:
        """Whether clients may compose; with the legacy gate the supplier must have joined."""
        if self.closed:
            return False
        if supplier_join_gate:
            return Role.SUPPLIER.value in self.roles_joined
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "room_id": self.room_id,
            "status": self.status.value,
            "members": len(self.members),
            "roles_joined": sorted(self.roles_joined),
        }


# =====================
# Signals
# =====================

@dataclass(frozen=True)
class MemberJoined:
    session_id: str
    role: str


@dataclass(frozen=True)
class MemberLeft:
    session_id: str


@dataclass(frozen=True)
class MessageAccepted:
    message: ChatMessage


@dataclass(frozen=True)
class RoomClosed:
    closing_actor_id: Optional[str] = None
    reason: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RoomReopened:
    pass


RoomSignal = Union[MemberJoined, MemberLeft, MessageAccepted, RoomClosed, RoomReopened]


# =====================
# Effects
# =====================

@dataclass(frozen=True)
class ReplayHistory:
    """Fetch recent history and deliver it to one session only."""
    session_id: str


@dataclass(frozen=True)
class Deliver:
    """Point-to-point delivery."""
    session_id: str
    event: OutboundEvent


@dataclass(frozen=True)
class Broadcast:
    recipients: Tuple[str, ...]
    event: OutboundEvent


Effect = Union[ReplayHistory, Deliver, Broadcast]


@dataclass(frozen=True)
class Transition:
    state: RoomState
    effects: List[Effect] = field(default_factory=list)


def _recipients(members: FrozenSet[str], exclude: Optional[str] = None) -> Tuple[str, ...]:
    # Sorted so broadcasts are deterministic
    return tuple(sorted(m for m in members if m != exclude))


def transition(state: RoomState, signal: RoomSignal, supplier_join_gate: bool = False) -> Transition:
    """
    Apply one signal to a room.

    Args:
        state: Current room state
        signal: What happened
        supplier_join_gate: Enable the legacy one-time "supplier joined" notice

    Returns:
        Transition with the new state and the effects to perform, in order
    """
    if isinstance(signal, MemberJoined):
        return _on_join(state, signal, supplier_join_gate)
    if isinstance(signal, MemberLeft):
        if signal.session_id not in state.members:
            return Transition(state)
        return Transition(replace(state, members=state.members - {signal.session_id}))
    if isinstance(signal, MessageAccepted):
        new_state = replace(state, closed=False)
        return Transition(
            new_state,
            [Broadcast(_recipients(new_state.members), ReceiveMessage(message=signal.message))],
        )
    if isinstance(signal, RoomClosed):
        new_state = replace(state, closed=True)
        notice = ChatClosed(
            room_id=state.room_id,
            closed_by=signal.closing_actor_id,
            reason=dict(signal.reason),
        )
        return Transition(new_state, [Broadcast(_recipients(new_state.members), notice)])
    if isinstance(signal, RoomReopened):
        return Transition(replace(state, closed=False))
    raise TypeError(f"Unhandled room signal: {type(signal).__name__}")


def _on_join(state: RoomState, signal: MemberJoined, supplier_join_gate: bool) -> Transition:
    if signal.session_id in state.members:
        # Re-join: membership unchanged, no second replay
        return Transition(replace(state, roles_joined=state.roles_joined | {signal.role}))

    new_state = replace(
        state,
        members=state.members | {signal.session_id},
        roles_joined=state.roles_joined | {signal.role},
    )
    effects: List[Effect] = [
        ReplayHistory(signal.session_id),
        Deliver(
            signal.session_id,
            RoomJoined(
                room_id=state.room_id,
                closed=new_state.closed,
                messaging_enabled=new_state.messaging_enabled(supplier_join_gate),
            ),
        ),
    ]

    if (
        supplier_join_gate
        and signal.role == Role.SUPPLIER.value
        and not state.supplier_notice_sent
    ):
        new_state = replace(new_state, supplier_notice_sent=True)
        others = _recipients(new_state.members, exclude=signal.session_id)
        if others:
            effects.append(Broadcast(others, SupplierJoined(room_id=state.room_id)))

    return Transition(new_state, effects)
