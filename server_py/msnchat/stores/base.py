from __future__ import annotations

import abc
from datetime import datetime, timedelta, timezone
from typing import List

from msnchat.schemas.chat import Message, TypingIndicator


class ChatStore(abc.ABC):
    """Хранилище сообщений и индикаторов набора текста, разбитое по комнатам.

    Все операции записи атомарны в пределах одной комнаты или одной пары
    (room, username). Ошибки бэкенда поднимаются как StoreUnavailable.
    """

    name: str = "store"

    @abc.abstractmethod
    async def append(self, room: str, username: str, user_color: str, text: str) -> Message:
        """Сохраняет сообщение, присваивая id и created_at."""

    @abc.abstractmethod
    async def recent(self, room: str, limit: int) -> List[Message]:
        """Последние `limit` сообщений комнаты по возрастанию created_at."""

    @abc.abstractmethod
    async def trim(self, room: str, max_retain: int) -> int:
        """Удаляет самые старые сообщения сверх `max_retain`, возвращает число удаленных."""

    @abc.abstractmethod
    async def heartbeat_typing(self, room: str, username: str, user_color: str) -> TypingIndicator:
        ...

    @abc.abstractmethod
    async def list_typing(self, room: str, stale_after: float) -> List[TypingIndicator]:
        """Активные индикаторы комнаты; устаревшие не возвращаются."""

    @abc.abstractmethod
    async def remove_typing(self, room: str, username: str) -> None:
        ...

    @abc.abstractmethod
    async def prune_typing(self, stale_after: float) -> int:
        ...

    async def close(self) -> None:
        return None


def stale_cutoff(now: datetime, stale_after: float) -> datetime:
    return now - timedelta(seconds=stale_after)


def as_utc(value: datetime) -> datetime:
    # SQLite теряет таймзону при чтении
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
