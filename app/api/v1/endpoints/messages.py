"""
Messages API Endpoints

Paginated chat history and read receipts for a room.
"""
import logging
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_user, get_message_log
from app.schemas.message import MarkReadResponse, MessageHistoryResponse, Pagination
from app.schemas.token import TokenPayload
from app.services.message_log import MessageLog

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/{room_id}", response_model=MessageHistoryResponse)
async def get_room_messages(
    room_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user: TokenPayload = Depends(get_current_user),
    message_log: MessageLog = Depends(get_message_log),
):
    """Page 1 holds the newest messages; each page is returned in chronological order."""
    messages, total = await message_log.fetch_page(room_id, page=page, limit=limit)
    return MessageHistoryResponse(
        messages=messages,
        pagination=Pagination(page=page, limit=limit, total=total),
    )


@router.put("/read/{room_id}", response_model=MarkReadResponse)
async def mark_room_read(
    room_id: str,
    user: TokenPayload = Depends(get_current_user),
    message_log: MessageLog = Depends(get_message_log),
):
    updated = await message_log.mark_read(room_id)
    logger.info(f"User {user.user_id} marked {updated} message(s) read in room {room_id}")
    return MarkReadResponse(updated=updated)
