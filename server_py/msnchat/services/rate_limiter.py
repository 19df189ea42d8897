"""
Fixed-window rate limiter for message posts.

Один принятый пост на (room, username) за окно W секунд, без burst.
Состояние хранится в backend: в памяти процесса или в Redis, чтобы
переживать перезапуски.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from msnchat.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: float = 0.0


class RateLimitBackend(abc.ABC):
    name = "backend"

    @abc.abstractmethod
    async def claim(self, key: str, now: float, window: float) -> Optional[float]:
        """Пытается занять окно для ключа.

        Возвращает None, если окно занято этим вызовом (пост принят), иначе
        время последнего принятого поста.
        """


class MemoryRateLimitBackend(RateLimitBackend):
    name = "memory"

    def __init__(self) -> None:
        self._last_accepted: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def claim(self, key: str, now: float, window: float) -> Optional[float]:
        async with self._lock:
            last = self._last_accepted.get(key)
            if last is not None and now - last < window:
                return last
            self._last_accepted[key] = now
            self._maybe_prune(now, window)
            return None

    def _maybe_prune(self, now: float, window: float) -> None:
        # Убираем истекшие ключи, чтобы словарь не рос бесконечно
        if len(self._last_accepted) < 1024:
            return
        expired = [k for k, ts in self._last_accepted.items() if now - ts >= window]
        for k in expired:
            del self._last_accepted[k]


class RedisRateLimitBackend(RateLimitBackend):
    name = "redis"
    KEY = "chat:ratelimit:{key}"

    def __init__(self, client: aioredis.Redis) -> None:
        self.client = client

    async def claim(self, key: str, now: float, window: float) -> Optional[float]:
        redis_key = self.KEY.format(key=key)
        window_ms = max(1, int(window * 1000))
        try:
            # SET NX атомарно занимает окно; ключ сам истекает через W
            for _ in range(2):
                if await self.client.set(redis_key, repr(now), nx=True, px=window_ms):
                    return None
                stored = await self.client.get(redis_key)
                if stored is None:
                    continue
                last = float(stored)
                if now - last < window:
                    return last
                # Часы узлов расходятся с TTL ключа: окно уже прошло
                await self.client.set(redis_key, repr(now), px=window_ms)
                return None
        except (RedisError, OSError, ValueError) as exc:
            raise StoreUnavailable(f"redis rate limit failed: {exc}") from exc
        return None


class RateLimiter:
    def __init__(
        self,
        window: float = 10.0,
        backend: Optional[RateLimitBackend] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window = window
        self.backend = backend or MemoryRateLimitBackend()
        self._fallback = MemoryRateLimitBackend()
        self._clock = clock

    @staticmethod
    def key(room: str, username: str) -> str:
        return f"{room}:{username}"

    async def accept(self, room: str, username: str) -> RateDecision:
        now = self._clock()
        key = self.key(room, username)
        try:
            last = await self.backend.claim(key, now, self.window)
        except StoreUnavailable as exc:
            logger.warning("Rate limit backend %s unavailable, using memory: %s", self.backend.name, exc)
            last = await self._fallback.claim(key, now, self.window)
        if last is None:
            return RateDecision(allowed=True)
        retry_after = self.window - (now - last)
        logger.info("Rate limited %s in %s, retry after %.1fs", username, room, retry_after)
        return RateDecision(allowed=False, retry_after=max(0.0, retry_after))


def build_rate_limiter(settings) -> RateLimiter:
    backend: RateLimitBackend = MemoryRateLimitBackend()
    if settings.RATE_LIMIT_BACKEND == "redis":
        if not settings.REDIS_URL:
            raise ValueError("REDIS_URL is required for the redis rate limit backend")
        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.STORE_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.STORE_TIMEOUT_SECONDS,
        )
        backend = RedisRateLimitBackend(client)
    return RateLimiter(window=settings.RATE_LIMIT_WINDOW_SECONDS, backend=backend)
