import asyncio
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DIALER_TOKEN", "test-token")

from dataclasses import replace
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import powerdialer.models  # noqa: F401
from powerdialer.core.config import Settings
from powerdialer.core.db import Base, configure_sqlite
from powerdialer.core.errors import GatewayError, ListNotFoundError
from powerdialer.services.amd import CallEvent
from powerdialer.services.dialer_service import DialerController
from powerdialer.services.list_service import ListDefaults, TargetSource
from powerdialer.services.run_registry import MemoryRunStore, Target
from powerdialer.services.telnyx_gateway import CallGateway

CALLER_IDS = ["+15550001111", "+15550002222"]


class FakeGateway(CallGateway):
    def __init__(self):
        self.originated = []
        self.hangups = []
        self.transfers = []
        self.playbacks = []
        self.reject_numbers = set()
        self.hangup_errors = {}
        self.on_hangup = None
        self.originate_gate = None
        self._next = 0

    async def originate(self, from_number, to_number, amd_config, webhook_url, client_state):
        if self.originate_gate is not None:
            await self.originate_gate.wait()
        if to_number in self.reject_numbers:
            raise GatewayError("D38 destination rejected", 422)
        self._next += 1
        session_id = f"call-{self._next}"
        self.originated.append(
            SimpleNamespace(
                session_id=session_id,
                from_number=from_number,
                to_number=to_number,
                amd_config=amd_config,
                webhook_url=webhook_url,
                client_state=client_state,
            )
        )
        return session_id

    async def hangup(self, session_id):
        self.hangups.append(session_id)
        if self.on_hangup is not None:
            self.on_hangup(session_id)
            await asyncio.sleep(0)
        if session_id in self.hangup_errors:
            raise self.hangup_errors[session_id]

    async def transfer(self, session_id, destination, caller_id):
        self.transfers.append((session_id, destination, caller_id))

    async def start_playback(self, session_id, audio_url, loop_count=1):
        self.playbacks.append((session_id, audio_url, loop_count))


class FakeTargets(TargetSource):
    def __init__(self, lists=None):
        self.lists = lists or {}
        self.marks = []

    def list_defaults(self, list_id):
        if list_id not in self.lists:
            raise ListNotFoundError(list_id)
        return ListDefaults(None, None)

    def load_targets(self, list_id):
        return [replace(t) for t in self.lists.get(list_id, [])]

    def mark_entry(self, entry_id, status, attempted=False):
        self.marks.append((entry_id, status, attempted))


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_targets(count, start=1):
    return [
        Target(entry_id=i, contact_id=f"contact-{i}", phone=f"+1555100{i:04d}")
        for i in range(start, start + count)
    ]


def call_event(event_type, session_id, result=None, cause=None, client_state=None, from_number=None):
    return CallEvent(
        event_type=event_type,
        session_id=session_id,
        result=result,
        hangup_cause=cause,
        client_state=client_state,
        from_number=from_number,
    )


@pytest.fixture
def settings():
    return Settings(
        DIALER_TOKEN="test-token",
        TELNYX_API_KEY="KEY_test",
        TELNYX_CONNECTION_ID="conn-1",
        TELNYX_RTC_LOGIN="agent1",
        WEBHOOK_BASE_URL="https://dialer.example.com",
        DEFAULT_CALLER_IDS=CALLER_IDS,
        AMD_FALLBACK_SECONDS=0,
        AGENT_HOLD_AUDIO_URL=None,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def targets():
    return FakeTargets({"list-1": make_targets(5), "list-2": make_targets(3, start=100)})


@pytest.fixture
def store():
    return MemoryRunStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def controller(gateway, store, targets, settings, clock):
    return DialerController(gateway, store, targets, settings=settings, clock=clock)


@pytest.fixture
def session_factory():
    engine = configure_sqlite(
        create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
