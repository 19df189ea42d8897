"""Unit tests for ChatService validation and housekeeping."""

import pytest

from msnchat.core.config import Settings
from msnchat.core.errors import ChatValidationError, RateLimited, StoreUnavailable
from msnchat.services.chat import ChatService
from msnchat.services.rate_limiter import RateLimiter
from msnchat.stores.memory_store import MemoryStore


class TrimFailingStore(MemoryStore):
    async def trim(self, room, max_retain):
        raise StoreUnavailable("trim failed")


class RecordingNotifier:
    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    async def publish(self, room, payload):
        if self.fail:
            raise RuntimeError("socket gone")
        self.events.append((room, payload["type"]))


@pytest.fixture
def settings():
    return Settings(MESSAGES_READ_LIMIT=3, MESSAGES_RETAIN_LIMIT=5)


def _service(store, clock, settings, notifier=None):
    return ChatService(store, RateLimiter(window=10, clock=clock.time), notifier=notifier, settings=settings)


async def test_retention_cap_applied_after_append(clock, settings):
    store = MemoryStore(clock=clock)
    chat = _service(store, clock, settings)
    for i in range(8):
        await chat.post_message(room="lobby", username=f"u{i}", text=f"m{i}")
        clock.advance(1)
    assert await store.count("lobby") == 5
    assert [m.message for m in await chat.list_messages("lobby")] == ["m5", "m6", "m7"]


async def test_rate_limited_carries_retry_after(clock, settings):
    chat = _service(MemoryStore(clock=clock), clock, settings)
    await chat.post_message(room="lobby", username="Ape42", text="gm")
    clock.advance(3)
    with pytest.raises(RateLimited) as excinfo:
        await chat.post_message(room="lobby", username="Ape42", text="gm again")
    assert excinfo.value.retry_after == pytest.approx(7)
    assert excinfo.value.wait_time == 7


async def test_validation_errors(clock, settings):
    chat = _service(MemoryStore(clock=clock), clock, settings)
    with pytest.raises(ChatValidationError):
        await chat.post_message(room="lobby", username=None, text="gm")
    with pytest.raises(ChatValidationError):
        await chat.heartbeat_typing(room="lobby", username="")
    with pytest.raises(ChatValidationError):
        await chat.remove_typing(room=None, username="Ape42")


async def test_housekeeping_failure_does_not_fail_post(clock, settings):
    chat = _service(TrimFailingStore(clock=clock), clock, settings)
    message = await chat.post_message(room="lobby", username="Ape42", text="gm")
    assert message.message == "gm"


async def test_notifier_receives_updates_and_errors_are_swallowed(clock, settings):
    notifier = RecordingNotifier()
    chat = _service(MemoryStore(clock=clock), clock, settings, notifier)
    await chat.heartbeat_typing(room="dev", username="Ape42")
    await chat.post_message(room="dev", username="Ape42", text="gm")
    assert notifier.events == [("dev", "typing"), ("dev", "message"), ("dev", "typing")]

    broken = _service(MemoryStore(clock=clock), clock, settings, RecordingNotifier(fail=True))
    await broken.post_message(room="dev", username="Ape42", text="gm")
