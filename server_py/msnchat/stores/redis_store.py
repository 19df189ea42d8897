from __future__ import annotations

import logging
import math
from typing import Callable, List

from pydantic import ValidationError
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from msnchat.core.errors import StoreUnavailable
from msnchat.schemas.chat import Message, TypingIndicator, new_id, utcnow
from msnchat.stores.base import ChatStore, stale_cutoff

logger = logging.getLogger(__name__)

MESSAGES_KEY = "chat:messages:{room}"  # sorted set, score = epoch ms
TYPING_KEY = "chat:typing:{room}"  # hash username -> json индикатора
TYPING_ROOMS_KEY = "chat:typing:rooms"  # set комнат с индикаторами


class RedisStore(ChatStore):
    """Сообщения в sorted set, индикаторы набора в hash с TTL."""

    name = "redis"

    def __init__(self, client: aioredis.Redis, *, typing_ttl: float = 10.0, clock: Callable = utcnow) -> None:
        self.client = client
        self.typing_ttl = typing_ttl
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, *, timeout: float = 2.0, **kwargs) -> "RedisStore":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, **kwargs)

    async def append(self, room: str, username: str, user_color: str, text: str) -> Message:
        message = Message(
            id=new_id("msg"),
            room=room,
            username=username,
            user_color=user_color,
            message=text,
            created_at=self._clock(),
        )
        score = message.created_at.timestamp() * 1000
        try:
            await self.client.zadd(MESSAGES_KEY.format(room=room), {message.model_dump_json(): score})
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis append failed: {exc}") from exc
        return message

    async def recent(self, room: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        try:
            raw = await self.client.zrevrange(MESSAGES_KEY.format(room=room), 0, limit - 1)
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis recent failed: {exc}") from exc
        messages = []
        for item in reversed(raw):
            try:
                messages.append(Message.model_validate_json(item))
            except ValidationError:
                logger.warning("Skipping malformed message in room %s", room)
        return messages

    async def trim(self, room: str, max_retain: int) -> int:
        try:
            # ранги от самого старого; оставляем последние max_retain
            return int(await self.client.zremrangebyrank(MESSAGES_KEY.format(room=room), 0, -(max_retain + 1)))
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis trim failed: {exc}") from exc

    async def heartbeat_typing(self, room: str, username: str, user_color: str) -> TypingIndicator:
        indicator = TypingIndicator(
            id=new_id("typing"),
            room=room,
            username=username,
            user_color=user_color,
            updated_at=self._clock(),
        )
        key = TYPING_KEY.format(room=room)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(key, username, indicator.model_dump_json())
                pipe.expire(key, max(1, math.ceil(self.typing_ttl)))
                pipe.sadd(TYPING_ROOMS_KEY, room)
                await pipe.execute()
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis typing upsert failed: {exc}") from exc
        return indicator

    async def list_typing(self, room: str, stale_after: float) -> List[TypingIndicator]:
        key = TYPING_KEY.format(room=room)
        cutoff = stale_cutoff(self._clock(), stale_after)
        try:
            raw = await self.client.hgetall(key)
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis typing read failed: {exc}") from exc

        active: List[TypingIndicator] = []
        stale: List[str] = []
        for username, value in raw.items():
            try:
                indicator = TypingIndicator.model_validate_json(value)
            except ValidationError:
                stale.append(username)
                continue
            # TTL на весь hash грубый, поэтому проверяем каждую запись
            if indicator.updated_at < cutoff:
                stale.append(username)
            else:
                active.append(indicator)
        if stale:
            try:
                await self.client.hdel(key, *stale)
            except (RedisError, OSError) as exc:
                logger.warning("Failed to purge stale typing entries in %s: %s", room, exc)
        return sorted(active, key=lambda t: t.updated_at)

    async def remove_typing(self, room: str, username: str) -> None:
        try:
            await self.client.hdel(TYPING_KEY.format(room=room), username)
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis typing delete failed: {exc}") from exc

    async def prune_typing(self, stale_after: float) -> int:
        try:
            rooms = await self.client.smembers(TYPING_ROOMS_KEY)
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis typing prune failed: {exc}") from exc
        before = 0
        after = 0
        for room in rooms:
            key = TYPING_KEY.format(room=room)
            try:
                before += await self.client.hlen(key)
            except (RedisError, OSError) as exc:
                raise StoreUnavailable(f"redis typing prune failed: {exc}") from exc
            active = await self.list_typing(room, stale_after)
            after += len(active)
            if active:
                continue
            try:
                # Hash пуст или истек по TTL: комната больше не нужна в индексе
                if not await self.client.exists(key):
                    await self.client.srem(TYPING_ROOMS_KEY, room)
            except (RedisError, OSError) as exc:
                raise StoreUnavailable(f"redis typing prune failed: {exc}") from exc
        return before - after

    async def close(self) -> None:
        await self.client.aclose()
