from typing import List, Optional

from fastapi import APIRouter, Depends

from msnchat.core.dependencies import get_chat_service
from msnchat.schemas.chat import SuccessResponse, TypingIndicator, TypingUpdate
from msnchat.services.chat import ChatService

router = APIRouter()


@router.get("", response_model=List[TypingIndicator])
async def get_typing(
    room: Optional[str] = None,
    chat: ChatService = Depends(get_chat_service),
):
    """Кто сейчас печатает в комнате (устаревшие записи не возвращаются)"""
    return await chat.list_typing(room)


@router.post("", response_model=SuccessResponse)
async def update_typing(
    payload: TypingUpdate,
    chat: ChatService = Depends(get_chat_service),
):
    await chat.heartbeat_typing(
        room=payload.room,
        username=payload.username,
        user_color=payload.user_color,
    )
    return SuccessResponse()


@router.delete("", response_model=SuccessResponse)
async def clear_typing(
    room: Optional[str] = None,
    username: Optional[str] = None,
    chat: ChatService = Depends(get_chat_service),
):
    await chat.remove_typing(room=room, username=username)
    return SuccessResponse()
