from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from msnchat.core.config import Settings, settings as default_settings
from msnchat.core.errors import ChatValidationError, RateLimited, StoreUnavailable
from msnchat.schemas.chat import Message, TypingIndicator
from msnchat.services.rate_limiter import RateLimiter
from msnchat.stores.base import ChatStore

logger = logging.getLogger(__name__)


class RoomNotifier(Protocol):
    async def publish(self, room: str, payload: dict) -> None:
        ...


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class ChatService:
    """Сообщения и индикаторы набора текста по комнатам."""

    def __init__(
        self,
        store: ChatStore,
        limiter: RateLimiter,
        notifier: Optional[RoomNotifier] = None,
        settings: Settings = default_settings,
    ) -> None:
        self.store = store
        self.limiter = limiter
        self.notifier = notifier
        self.settings = settings

    def _room(self, room: Optional[str]) -> str:
        return _clean(room) or self.settings.DEFAULT_ROOM

    def _color(self, color: Optional[str]) -> str:
        return _clean(color) or self.settings.DEFAULT_USER_COLOR

    async def list_messages(self, room: Optional[str] = None) -> List[Message]:
        return await self.store.recent(self._room(room), self.settings.MESSAGES_READ_LIMIT)

    async def post_message(
        self,
        *,
        room: Optional[str],
        username: Optional[str],
        text: Optional[str],
        user_color: Optional[str] = None,
    ) -> Message:
        username = _clean(username)
        # Текст не обрезаем: клиент уже применил свои фильтры
        if not username or not _clean(text):
            raise ChatValidationError("Missing required fields")
        room = self._room(room)

        decision = await self.limiter.accept(room, username)
        if not decision.allowed:
            raise RateLimited(decision.retry_after)

        message = await self.store.append(room, username, self._color(user_color), text)
        try:
            await self.store.trim(room, self.settings.MESSAGES_RETAIN_LIMIT)
            # Отправил сообщение - больше не печатает
            await self.store.remove_typing(room, username)
        except StoreUnavailable as exc:
            logger.warning("Post-append housekeeping failed in %s: %s", room, exc)

        await self._publish(room, {"type": "message", "data": message.model_dump(mode="json")})
        await self._publish_typing(room)
        return message

    async def list_typing(self, room: Optional[str] = None) -> List[TypingIndicator]:
        return await self.store.list_typing(self._room(room), self.settings.TYPING_STALE_SECONDS)

    async def heartbeat_typing(
        self,
        *,
        room: Optional[str],
        username: Optional[str],
        user_color: Optional[str] = None,
    ) -> TypingIndicator:
        username = _clean(username)
        if not username:
            raise ChatValidationError("Missing username")
        room = self._room(room)
        indicator = await self.store.heartbeat_typing(room, username, self._color(user_color))
        await self._publish_typing(room)
        return indicator

    async def remove_typing(self, *, room: Optional[str], username: Optional[str]) -> None:
        room = _clean(room)
        username = _clean(username)
        if not room or not username:
            raise ChatValidationError("Missing room or username")
        await self.store.remove_typing(room, username)
        await self._publish_typing(room)

    async def _publish_typing(self, room: str) -> None:
        if self.notifier is None:
            return
        typing = await self.list_typing(room)
        await self._publish(room, {"type": "typing", "data": [t.model_dump(mode="json") for t in typing]})

    async def _publish(self, room: str, payload: dict) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.publish(room, payload)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to push %s update to room %s", payload.get("type"), room)
