from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from coach_sessions.application.authorization import StaticIdentityProvider
from coach_sessions.application.event_bus import EventBus, shutdown_event_bus
from coach_sessions.application.lifecycle import SessionLifecycle
from coach_sessions.config.settings import get_settings
from coach_sessions.domain.identity import Identity, Role
from coach_sessions.domain.session.models import Session
from coach_sessions.domain.session.states import SessionStatus
from coach_sessions.domain.validation.validator import SessionValidator
from coach_sessions.infra.quota import StaticQuotaProvider
from coach_sessions.infra.session_store_memory import InMemorySessionStore

BASE_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class FakeClock:
    """Relógio controlado pelos testes."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class EventRecorder:
    """Handler que guarda (event_type, payload) publicados."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def listen(self, bus: EventBus, *event_types: str) -> EventRecorder:
        for event_type in event_types:
            bus.subscribe(event_type, lambda payload, et=event_type: self.events.append((et, payload)))
        return self

    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]


@pytest.fixture(autouse=True)
def _reset_singletons():
    get_settings.cache_clear()
    shutdown_event_bus()
    yield
    get_settings.cache_clear()
    shutdown_event_bus()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture()
def quota() -> StaticQuotaProvider:
    return StaticQuotaProvider(3)


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def user() -> Identity:
    return Identity.for_role("u1", Role.USER)


@pytest.fixture()
def coach() -> Identity:
    return Identity.for_role("c1", Role.COACH)


@pytest.fixture()
def admin() -> Identity:
    return Identity.for_role("admin-1", Role.ADMIN)


@pytest.fixture()
def identity() -> StaticIdentityProvider:
    """Provider cuja identidade cada teste troca via `.identity = ...`."""
    return StaticIdentityProvider()


@pytest.fixture()
def lifecycle(
    store: InMemorySessionStore,
    quota: StaticQuotaProvider,
    bus: EventBus,
    identity: StaticIdentityProvider,
    clock: FakeClock,
) -> SessionLifecycle:
    return SessionLifecycle(
        store,
        quota,
        bus=bus,
        validator=SessionValidator(clock=clock),
        identity_provider=identity,
        clock=clock,
    )


@pytest.fixture()
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture()
def make_session() -> Callable[..., Session]:
    """Fábrica de Session válida (requested) com sobrescritas."""

    def _make(**overrides: Any) -> Session:
        fields: dict[str, Any] = {
            "id": "session-0001",
            "user_id": "u1",
            "coach_id": "c1",
            "topic": "Car engine noise",
            "status": SessionStatus.REQUESTED,
            "created_at": BASE_TIME,
            "updated_at": BASE_TIME,
        }
        fields.update(overrides)
        return Session(**fields)

    return _make


@pytest.fixture()
def seed_session(
    store: InMemorySessionStore,
) -> Callable[..., Awaitable[str]]:
    """Grava diretamente no store uma sessão no status pedido; retorna o id."""

    async def _seed(status: SessionStatus = SessionStatus.REQUESTED, **fields: Any) -> str:
        record = await store.create(
            {"user_id": "u1", "coach_id": "c1", "topic": "Car engine noise"}
        )
        changes: dict[str, Any] = {"status": str(status)}
        if status == SessionStatus.IN_PROGRESS:
            changes["start_time"] = BASE_TIME.isoformat()
            changes["end_time"] = (BASE_TIME + timedelta(minutes=20)).isoformat()
        if status == SessionStatus.COMPLETED:
            changes["start_time"] = BASE_TIME.isoformat()
            changes["end_time"] = (BASE_TIME + timedelta(minutes=15)).isoformat()
        changes.update(fields)
        await store.patch(record["id"], changes)
        return record["id"]

    return _seed
