from typing import List, Optional

from fastapi import APIRouter, Depends

from msnchat.core.dependencies import get_chat_service
from msnchat.schemas.chat import Message, MessageCreate, MessagePosted
from msnchat.services.chat import ChatService

router = APIRouter()


@router.get("", response_model=List[Message])
async def get_messages(
    room: Optional[str] = None,
    chat: ChatService = Depends(get_chat_service),
):
    """Последние сообщения комнаты (не больше 100), от старых к новым"""
    return await chat.list_messages(room)


@router.post("", response_model=MessagePosted)
async def post_message(
    payload: MessageCreate,
    chat: ChatService = Depends(get_chat_service),
):
    """Отправка сообщения с учетом ограничения частоты"""
    message = await chat.post_message(
        room=payload.room,
        username=payload.username,
        user_color=payload.user_color,
        text=payload.message,
    )
    return MessagePosted(message=message)
