import pytest
from fastapi.testclient import TestClient

from sensorlogs.config import settings
from sensorlogs.main import app, get_store

from fakes import NOW, MemoryStore, ts


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    s = MemoryStore()
    s.add(1, "dev1", "suhu", 25.5, ts("2024-11-20 10:00:00"))
    s.add(2, "dev1", "kelembapan", 60.0, ts("2024-11-20 10:00:00"))
    s.add(3, "dev1", "suhu", 26.5, ts("2024-11-20 11:30:00"))
    s.add(4, "dev1", "kelembapan", 62.0, ts("2024-11-20 11:30:00"))
    s.add(5, "dev1", "suhu", 24.0, ts("2024-11-19 09:15:00"))
    s.add(6, "dev1", "suhu", 23.0, ts("2024-11-15 08:00:00"))
    s.add(7, "dev1", "suhu", 22.0, ts("2024-11-01 00:30:00"))
    s.add(8, "dev1", "suhu", 21.0, ts("2024-10-31 23:00:00"))
    s.add(9, "dev2", "suhu", 30.0, ts("2024-11-20 11:45:00"))
    s.add(10, "dev1", "suhu", 27.3, ts("2024-11-20 11:45:00"))
    return s


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin the compiler's notion of 'now' so trailing windows are stable."""
    monkeypatch.setattr("sensorlogs.query.compiler.reference_now", lambda: NOW)
    return NOW


@pytest.fixture
def client(store, frozen_clock, monkeypatch):
    monkeypatch.setattr(settings, "STARTUP_DB_CHECK", False)
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
