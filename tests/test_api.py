"""HTTP contract tests for the messages, typing and rooms routes."""

import pytest
from fastapi.testclient import TestClient

from msnchat.core.config import Settings
from msnchat.core.errors import StoreUnavailable
from msnchat.main import create_app
from msnchat.services.rate_limiter import RateLimiter
from msnchat.stores.fallback import FallbackStore
from msnchat.stores.memory_store import MemoryStore


class DownStore(MemoryStore):
    name = "down"

    async def _fail(self, *args, **kwargs):
        raise StoreUnavailable("connection refused")

    append = recent = trim = heartbeat_typing = list_typing = remove_typing = prune_typing = _fail


@pytest.fixture
def settings():
    return Settings(STORE_BACKENDS="memory", RATE_LIMIT_BACKEND="memory")


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def client(settings, store, clock):
    app = create_app(settings=settings, store=store, limiter=RateLimiter(window=10, clock=clock.time))
    with TestClient(app) as client:
        yield client


class TestMessages:
    def test_empty_room_returns_empty_list(self, client):
        resp = client.get("/messages", params={"room": "lobby"})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_post_then_get(self, client):
        resp = client.post(
            "/messages",
            json={"room": "dev", "username": "Ape42", "user_color": "#ff0000", "message": "gm"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"]["room"] == "dev"
        assert body["message"]["user_color"] == "#ff0000"
        assert body["message"]["id"].startswith("msg_")

        messages = client.get("/messages", params={"room": "dev"}).json()
        assert [m["message"] for m in messages] == ["gm"]
        assert client.get("/messages", params={"room": "lobby"}).json() == []

    def test_defaults_room_and_color(self, client):
        body = client.post("/messages", json={"username": "Ape42", "message": "gm"}).json()
        assert body["message"]["room"] == "lobby"
        assert body["message"]["user_color"] == "#000000"
        assert len(client.get("/messages").json()) == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"room": "lobby", "message": "gm"},
            {"room": "lobby", "username": "Ape42"},
            {"room": "lobby", "username": "  ", "message": "gm"},
            {"room": "lobby", "username": "Ape42", "message": ""},
        ],
    )
    def test_missing_fields_rejected(self, client, payload):
        resp = client.post("/messages", json=payload)
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_malformed_body_rejected(self, client):
        resp = client.post("/messages", content="not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_second_post_within_window_is_throttled(self, client, clock):
        payload = {"room": "lobby", "username": "Ape42", "message": "gm"}
        assert client.post("/messages", json=payload).status_code == 200
        clock.advance(0.5)
        resp = client.post("/messages", json=payload)
        assert resp.status_code == 429
        body = resp.json()
        assert 9 <= body["waitTime"] <= 10
        assert "error" in body

        clock.advance(10)
        assert client.post("/messages", json=payload).status_code == 200

    def test_read_limit_is_applied(self, client, store, clock):
        for i in range(105):
            client.post("/messages", json={"username": f"user{i}", "message": f"m{i}"})
            clock.advance(0.01)
        messages = client.get("/messages").json()
        assert len(messages) == 100
        assert messages[-1]["message"] == "m104"

    def test_posting_clears_typing(self, client):
        client.post("/typing", json={"room": "lobby", "username": "Ape42"})
        client.post("/messages", json={"room": "lobby", "username": "Ape42", "message": "gm"})
        assert client.get("/typing", params={"room": "lobby"}).json() == []

    def test_versioned_prefix(self, client):
        assert client.get("/api/v1/messages").status_code == 200


class TestTyping:
    def test_heartbeat_and_list(self, client):
        resp = client.post("/typing", json={"room": "lobby", "username": "Ape42", "user_color": "#123456"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        typing = client.get("/typing", params={"room": "lobby"}).json()
        assert [(t["username"], t["user_color"]) for t in typing] == [("Ape42", "#123456")]

    def test_stale_indicator_disappears(self, client, clock):
        client.post("/typing", json={"room": "lobby", "username": "Ape42"})
        clock.advance(11)
        typing = client.get("/typing", params={"room": "lobby"}).json()
        assert "Ape42" not in [t["username"] for t in typing]

    def test_heartbeat_requires_username(self, client):
        resp = client.post("/typing", json={"room": "lobby"})
        assert resp.status_code == 400

    def test_delete_is_idempotent(self, client):
        client.post("/typing", json={"room": "lobby", "username": "Ape42"})
        for _ in range(2):
            resp = client.delete("/typing", params={"room": "lobby", "username": "Ape42"})
            assert resp.status_code == 200
            assert resp.json() == {"success": True}
        assert client.get("/typing", params={"room": "lobby"}).json() == []

    def test_delete_requires_params(self, client):
        assert client.delete("/typing", params={"room": "lobby"}).status_code == 400
        assert client.delete("/typing", params={"username": "Ape42"}).status_code == 400


class TestRoomsAndHealth:
    def test_rooms(self, client):
        assert client.get("/rooms").json() == {"rooms": ["lobby", "bnb", "usa", "dev"]}

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["ok"] is True
        assert body["backend"] == "memory"


class TestStoreDown:
    @pytest.fixture
    def client(self, settings, clock):
        store = FallbackStore([DownStore(), DownStore()], timeout=1)
        app = create_app(settings=settings, store=store, limiter=RateLimiter(window=10, clock=clock.time))
        with TestClient(app) as client:
            yield client

    def test_reads_degrade_to_empty(self, client):
        assert client.get("/messages").json() == []
        assert client.get("/typing").json() == []

    def test_write_failure_is_500(self, client):
        resp = client.post("/messages", json={"username": "Ape42", "message": "gm"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to insert message"}

    def test_typing_write_failure_is_500(self, client):
        resp = client.post("/typing", json={"username": "Ape42"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to update typing"}


class CrashingStore(MemoryStore):
    """Store that fails with an error no adapter is expected to raise."""

    name = "crashing"

    async def _crash(self, *args, **kwargs):
        raise KeyError("created_at")

    append = recent = trim = heartbeat_typing = list_typing = remove_typing = _crash


class TestStoreCrashes:
    @pytest.fixture
    def client(self, settings, clock):
        store = FallbackStore([CrashingStore(clock=clock)], timeout=1)
        app = create_app(settings=settings, store=store, limiter=RateLimiter(window=10, clock=clock.time))
        with TestClient(app) as client:
            yield client

    def test_reads_degrade_to_empty(self, client):
        resp = client.get("/messages", params={"room": "lobby"})
        assert resp.status_code == 200
        assert resp.json() == []
        resp = client.get("/typing", params={"room": "lobby"})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_crashing_primary_falls_through_to_memory(self, settings, clock):
        store = FallbackStore([CrashingStore(clock=clock), MemoryStore(clock=clock)], timeout=1)
        app = create_app(settings=settings, store=store, limiter=RateLimiter(window=10, clock=clock.time))
        with TestClient(app) as client:
            posted = client.post("/messages", json={"username": "Ape42", "message": "gm"})
            assert posted.status_code == 200
            listed = client.get("/messages")
            assert [m["id"] for m in listed.json()] == [posted.json()["message"]["id"]]
            assert client.get("/health").json()["backend"] == "memory"
