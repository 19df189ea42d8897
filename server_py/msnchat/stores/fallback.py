from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from msnchat.core.errors import StoreUnavailable
from msnchat.schemas.chat import Message, TypingIndicator
from msnchat.stores.base import ChatStore

logger = logging.getLogger(__name__)


class FallbackStore(ChatStore):
    """Цепочка хранилищ: основное, затем запасные по порядку.

    Таймаут, StoreUnavailable и любая другая ошибка бэкенда переводят вызов
    на следующее хранилище.
    Чтения, которым не помогло ни одно хранилище, возвращают пустой
    результат; записи поднимают StoreUnavailable. Записи, попавшие в
    запасное хранилище, обратно в основное не переносятся.
    """

    name = "fallback"

    def __init__(self, stores: Sequence[ChatStore], timeout: Optional[float] = 2.0) -> None:
        if not stores:
            raise ValueError("FallbackStore requires at least one store")
        self.stores: List[ChatStore] = list(stores)
        self.timeout = timeout
        self.active_backend: Optional[str] = None

    async def _call(self, op: str, fn: Callable[[ChatStore], Awaitable[Any]]) -> Any:
        errors = []
        for store in self.stores:
            try:
                if self.timeout:
                    result = await asyncio.wait_for(fn(store), timeout=self.timeout)
                else:
                    result = await fn(store)
            except asyncio.TimeoutError:
                logger.warning("%s: %s timed out after %.1fs", op, store.name, self.timeout)
                errors.append(f"{store.name}: timeout")
                continue
            except StoreUnavailable as exc:
                logger.warning("%s: %s unavailable: %s", op, store.name, exc)
                errors.append(f"{store.name}: {exc}")
                continue
            except Exception as exc:  # noqa: BLE001
                # Непредвиденная ошибка бэкенда - тоже повод перейти к следующему
                logger.exception("%s: %s failed unexpectedly", op, store.name)
                errors.append(f"{store.name}: {type(exc).__name__}: {exc}")
                continue
            if self.active_backend != store.name:
                logger.info("Serving %s from %s", op, store.name)
            self.active_backend = store.name
            return result
        raise StoreUnavailable(f"{op} failed on all stores ({'; '.join(errors)})")

    async def _read(self, op: str, fn: Callable[[ChatStore], Awaitable[Any]], default: Any) -> Any:
        try:
            return await self._call(op, fn)
        except StoreUnavailable as exc:
            # Чтение не должно ломать клиент: пустой результат вместо ошибки
            logger.error("%s degraded to empty result: %s", op, exc)
            return default

    async def append(self, room: str, username: str, user_color: str, text: str) -> Message:
        return await self._call("append", lambda s: s.append(room, username, user_color, text))

    async def recent(self, room: str, limit: int) -> List[Message]:
        return await self._read("recent", lambda s: s.recent(room, limit), [])

    async def trim(self, room: str, max_retain: int) -> int:
        return await self._call("trim", lambda s: s.trim(room, max_retain))

    async def heartbeat_typing(self, room: str, username: str, user_color: str) -> TypingIndicator:
        return await self._call("heartbeat_typing", lambda s: s.heartbeat_typing(room, username, user_color))

    async def list_typing(self, room: str, stale_after: float) -> List[TypingIndicator]:
        return await self._read("list_typing", lambda s: s.list_typing(room, stale_after), [])

    async def remove_typing(self, room: str, username: str) -> None:
        await self._call("remove_typing", lambda s: s.remove_typing(room, username))

    async def prune_typing(self, stale_after: float) -> int:
        return await self._read("prune_typing", lambda s: s.prune_typing(stale_after), 0)

    async def close(self) -> None:
        for store in self.stores:
            try:
                await store.close()
            except Exception:  # noqa: BLE001
                logger.exception("Failed to close store %s", store.name)
