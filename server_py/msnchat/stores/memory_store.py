from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Tuple

from msnchat.schemas.chat import Message, TypingIndicator, new_id, utcnow
from msnchat.stores.base import ChatStore, stale_cutoff


class MemoryStore(ChatStore):
    """Хранилище в памяти процесса.

    Создается явно при старте и живет до завершения процесса; при
    перезапуске данные теряются.
    """

    name = "memory"

    def __init__(self, clock: Callable = utcnow) -> None:
        self._clock = clock
        self._messages: Dict[str, List[Message]] = {}
        self._typing: Dict[Tuple[str, str], TypingIndicator] = {}
        self._lock = asyncio.Lock()

    async def append(self, room: str, username: str, user_color: str, text: str) -> Message:
        async with self._lock:
            # Время берется под блокировкой: порядок в списке совпадает с created_at
            message = Message(
                id=new_id("msg"),
                room=room,
                username=username,
                user_color=user_color,
                message=text,
                created_at=self._clock(),
            )
            self._messages.setdefault(room, []).append(message)
        return message

    async def recent(self, room: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        async with self._lock:
            messages = list(self._messages.get(room, ()))
        return sorted(messages, key=lambda m: m.created_at)[-limit:]

    async def trim(self, room: str, max_retain: int) -> int:
        async with self._lock:
            messages = self._messages.get(room)
            if not messages or len(messages) <= max_retain:
                return 0
            evicted = len(messages) - max_retain
            self._messages[room] = messages[evicted:]
            return evicted

    async def heartbeat_typing(self, room: str, username: str, user_color: str) -> TypingIndicator:
        async with self._lock:
            indicator = TypingIndicator(
                id=new_id("typing"),
                room=room,
                username=username,
                user_color=user_color,
                updated_at=self._clock(),
            )
            self._typing[(room, username)] = indicator
        return indicator

    async def list_typing(self, room: str, stale_after: float) -> List[TypingIndicator]:
        await self.prune_typing(stale_after)
        async with self._lock:
            return [t for (r, _), t in self._typing.items() if r == room]

    async def remove_typing(self, room: str, username: str) -> None:
        async with self._lock:
            self._typing.pop((room, username), None)

    async def prune_typing(self, stale_after: float) -> int:
        cutoff = stale_cutoff(self._clock(), stale_after)
        async with self._lock:
            stale = [key for key, t in self._typing.items() if t.updated_at < cutoff]
            for key in stale:
                del self._typing[key]
        return len(stale)

    async def count(self, room: str) -> int:
        async with self._lock:
            return len(self._messages.get(room, ()))
