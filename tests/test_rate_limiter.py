"""Tests for the fixed-window post rate limiter."""

import fakeredis
import pytest

from msnchat.core.errors import StoreUnavailable
from msnchat.services.rate_limiter import (
    MemoryRateLimitBackend,
    RateLimitBackend,
    RateLimiter,
    RedisRateLimitBackend,
)


class BrokenBackend(RateLimitBackend):
    name = "broken"

    async def claim(self, key, now, window):
        raise StoreUnavailable("redis down")


@pytest.fixture(params=["memory", "redis"])
def backend(request):
    if request.param == "memory":
        return MemoryRateLimitBackend()
    return RedisRateLimitBackend(fakeredis.FakeAsyncRedis(decode_responses=True))


async def test_second_post_within_window_is_rejected(backend, clock):
    limiter = RateLimiter(window=10, backend=backend, clock=clock.time)
    assert (await limiter.accept("lobby", "Ape42")).allowed
    clock.advance(0.5)
    decision = await limiter.accept("lobby", "Ape42")
    assert not decision.allowed
    assert decision.retry_after == pytest.approx(9.5)


async def test_post_allowed_after_window(backend, clock):
    limiter = RateLimiter(window=10, backend=backend, clock=clock.time)
    assert (await limiter.accept("lobby", "Ape42")).allowed
    clock.advance(10)
    assert (await limiter.accept("lobby", "Ape42")).allowed


async def test_rejected_post_does_not_extend_window(clock):
    limiter = RateLimiter(window=10, clock=clock.time)
    await limiter.accept("lobby", "Ape42")
    clock.advance(6)
    assert not (await limiter.accept("lobby", "Ape42")).allowed
    clock.advance(4)
    assert (await limiter.accept("lobby", "Ape42")).allowed


async def test_keys_are_per_room_and_user(clock):
    limiter = RateLimiter(window=10, clock=clock.time)
    assert (await limiter.accept("lobby", "Ape42")).allowed
    assert (await limiter.accept("dev", "Ape42")).allowed
    assert (await limiter.accept("lobby", "Bob")).allowed


async def test_broken_backend_falls_back_to_memory(clock):
    limiter = RateLimiter(window=10, backend=BrokenBackend(), clock=clock.time)
    assert (await limiter.accept("lobby", "Ape42")).allowed
    assert not (await limiter.accept("lobby", "Ape42")).allowed
