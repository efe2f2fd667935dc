"""Shared test fixtures and configuration."""
import asyncio
import json
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool
from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosedOK

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ELEVENLABS_API_KEY", "test-key")
os.environ.setdefault("ELEVENLABS_AGENT_ID", "agent-default")

from callbridge.main import app
from callbridge.core.config import Settings
from callbridge.core.container import ServiceContainer
from callbridge.core.dependencies import get_services
from callbridge.db.models import Base
from callbridge.db.seed import load_tenant_file, seed_tenants
from callbridge.services.agent.service import AgentUnavailableError

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_CLOSED = object()


class FakeCarrierSocket:
    """Server-side view of a Twilio media stream WebSocket."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent = []
        self.close_code = None
        self.application_state = WebSocketState.CONNECTED

    def feed(self, message: dict) -> None:
        self.incoming.put_nowait(json.dumps(message))

    def feed_raw(self, text: str) -> None:
        self.incoming.put_nowait(text)

    def hang_up(self) -> None:
        """Simulate Twilio dropping the connection."""
        self.incoming.put_nowait(_CLOSED)

    async def receive_text(self) -> str:
        item = await self.incoming.get()
        if item is _CLOSED:
            raise WebSocketDisconnect(code=self.close_code or 1000)
        return item

    async def send_text(self, data: str) -> None:
        if self.application_state == WebSocketState.DISCONNECTED:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason=None) -> None:
        if self.application_state == WebSocketState.DISCONNECTED:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.application_state = WebSocketState.DISCONNECTED
        self.close_code = code
        self.incoming.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self.application_state == WebSocketState.DISCONNECTED


class FakeAgentSocket:
    """Client connection to the voice agent."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent = []
        self.closed = False

    def feed(self, message: dict) -> None:
        self.incoming.put_nowait(json.dumps(message))

    def feed_raw(self, text: str) -> None:
        self.incoming.put_nowait(text)

    def hang_up(self) -> None:
        """Simulate the agent ending the conversation."""
        self.incoming.put_nowait(_CLOSED)

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def frames(self, frame_type: str):
        return [frame for frame in self.sent if frame.get("type") == frame_type]

    def audio_chunks(self):
        return [frame["user_audio_chunk"] for frame in self.sent if "user_audio_chunk" in frame]


class FakeAgentService:
    """Stands in for VoiceAgentService without any network access."""

    def __init__(
        self,
        agent_socket: FakeAgentSocket = None,
        fail: bool = False,
        error: Exception = None,
        gate: asyncio.Event = None,
    ):
        self.agent_socket = agent_socket or FakeAgentSocket()
        self.fail = fail
        self.error = error
        self.gate = gate
        self.connected_agents = []

    def is_available(self) -> bool:
        return True

    def resolve_agent_id(self, tenant):
        return tenant.agent_id if tenant and tenant.agent_id else "agent-default"

    async def connect(self, agent_id: str):
        self.connected_agents.append(agent_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise AgentUnavailableError("agent down")
        if self.error is not None:
            raise self.error
        return self.agent_socket


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def tenants_path():
    """Return path to test tenants YAML file."""
    return Path(__file__).parent / "fixtures" / "tenants.yaml"


@pytest.fixture
def tenant_records(tenants_path):
    return load_tenant_file(str(tenants_path))


@pytest.fixture
def test_settings():
    """Settings for testing. The hard-exit timer is disabled."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        elevenlabs_api_key="test-key",
        elevenlabs_agent_id="agent-default",
        shutdown_timeout_seconds=1.0,
        shutdown_poll_interval_seconds=0.05,
        shutdown_hard_exit_seconds=0,
    )


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session_factory(test_db_engine, tenant_records):
    """Session factory over a database seeded with the test tenants."""
    factory = async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)
    await seed_tenants(factory, tenant_records)
    return factory


@pytest.fixture
def carrier_socket():
    return FakeCarrierSocket()


@pytest.fixture
def agent_socket():
    return FakeAgentSocket()


@pytest.fixture
def fake_agent_service(agent_socket):
    return FakeAgentService(agent_socket)


@pytest.fixture
def api_session_factory(tmp_path, tenant_records):
    """
    File-backed database for TestClient tests.

    TestClient runs the app on its own event loop, so connections are not pooled.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _prepare():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await seed_tenants(factory, tenant_records)

    asyncio.run(_prepare())
    yield factory
    asyncio.run(engine.dispose())


@pytest.fixture
def test_services(test_settings, api_session_factory):
    return ServiceContainer(test_settings, api_session_factory)


@pytest.fixture
def test_client(test_services):
    """Create FastAPI test client with the service container overridden."""
    app.dependency_overrides[get_services] = lambda: test_services

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def wait_for():
    return wait_until


@pytest.fixture
def make_carrier_socket():
    return FakeCarrierSocket


@pytest.fixture
def make_agent_service():
    return FakeAgentService
