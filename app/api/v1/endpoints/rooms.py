"""
Rooms API Endpoints

Room identity derivation (so clients can pre-join before their order
round-trip completes) and live room status.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.deps import get_coordinator, get_current_user
from app.chat.coordinator import RoomCoordinator
from app.chat.room_identity import derive_room_identity
from app.core.exceptions import ValidationError
from app.schemas.token import TokenPayload

router = APIRouter(prefix="/rooms", tags=["rooms"])


class DeriveRoomRequest(BaseModel):
    party_a_id: str = Field(..., min_length=1, max_length=255)
    party_b_id: str = Field(..., min_length=1, max_length=255)


class DeriveRoomResponse(BaseModel):
    room_id: str


@router.post("/derive", response_model=DeriveRoomResponse)
async def derive_room(body: DeriveRoomRequest, user: TokenPayload = Depends(get_current_user)):
    try:
        room_id = derive_room_identity(body.party_a_id, body.party_b_id)
    except ValueError as e:
        raise ValidationError(str(e))
    return DeriveRoomResponse(room_id=room_id)


@router.get("/{room_id}")
async def get_room_status(
    room_id: str,
    user: TokenPayload = Depends(get_current_user),
    coordinator: RoomCoordinator = Depends(get_coordinator),
):
    return coordinator.room_status(room_id)
