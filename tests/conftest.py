import os
from datetime import datetime, timedelta, timezone

import pytest

# Тесты не должны зависеть от локального .env
os.environ.setdefault("STORE_BACKENDS", "memory")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")


class FakeClock:
    """Управляемые часы: datetime для хранилищ, float для лимитера."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def time(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()
