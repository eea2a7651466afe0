from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from database import MemoryStore
from services import CompletionLedger, DayReconciliationService, HabitRepository


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, year: int, month: int, day: int, hour: int = 9):
        self.now = datetime(year, month, day, hour, 30, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    # 2024-01-01 is a Monday
    return FrozenClock(datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def habits(store, clock):
    return HabitRepository(store, clock)


@pytest.fixture
def ledger(store):
    return CompletionLedger(store)


@pytest.fixture
def reconciler(habits, ledger, clock):
    return DayReconciliationService(habits, ledger, clock)


@pytest.fixture
def client(monkeypatch, clock):
    monkeypatch.setenv("DATABASE_URL", "memory://")
    from main import app, get_clock

    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
