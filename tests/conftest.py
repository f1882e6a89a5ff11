from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from central_atendimento.api.app import create_app
from central_atendimento.application.engine import AttendanceEngine
from central_atendimento.config.settings import Settings, get_settings
from central_atendimento.infra.store_memory import InMemoryAttendanceStore
from tests.helpers.fakes import FakeClock, RecordingTransport, local_time


@pytest.fixture()
def clock() -> FakeClock:
    # Quarta-feira, 10:00 em São Paulo: todos os setores abertos
    return FakeClock(local_time(2025, 6, 11, 10, 0))


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def store() -> InMemoryAttendanceStore:
    return InMemoryAttendanceStore()


@pytest.fixture()
def settings() -> Settings:
    return Settings(scheduler_enabled=False, log_format="text", environment="development")


@pytest.fixture()
def engine(store, transport, settings, clock) -> AttendanceEngine:
    return AttendanceEngine(store, transport, settings=settings, clock=clock)


@pytest.fixture()
def client(store, transport, settings, clock):
    get_settings.cache_clear()
    app = create_app(settings=settings, store=store, transport=transport, clock=clock)
    with TestClient(app) as test_client:
        yield test_client
