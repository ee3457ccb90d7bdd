"""Pytest fixtures shared by the unit tests.

Fixtures build the core around an in-memory store (or fakeredis for the
Redis adapter) and an in-process HTTP client, so no running services are
needed outside tests/integration.
"""

from typing import AsyncGenerator, List, Tuple

import fakeredis
import fakeredis.aioredis
import httpx
import pytest

from voting_api.config import Settings
from voting_api.ledger import VoteLedger
from voting_api.main import create_app
from voting_api.observability import Instrumentation
from voting_api.registry import TopicRegistry
from voting_api.store import MemoryStore, RedisStore


class RecordingInstrumentation(Instrumentation):
    """Instrumentation that remembers every start/end hook call."""

    def __init__(self):
        super().__init__()
        self.started: List[str] = []
        self.ended: List[Tuple[str, str]] = []

    def on_start(self, operation: str) -> None:
        self.started.append(operation)

    def on_end(self, operation: str, status: str, duration: float) -> None:
        super().on_end(operation, status, duration)
        self.ended.append((operation, status))


@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the environment the tests run in."""
    return Settings(
        REDIS_HOST="localhost",
        VOTING_UI_BASE_URL="http://localhost:3001/vote",
        LEDGER_APPEND_STRATEGY="optimistic",
        STRICT_VOTE_CHOICES=True,
    )


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def redis_store() -> RedisStore:
    """RedisStore over a private fakeredis server."""
    client = fakeredis.aioredis.FakeRedis(
        server=fakeredis.FakeServer(),
        decode_responses=True
    )
    return RedisStore(client=client, timeout=1.0)


@pytest.fixture
def instrumentation() -> RecordingInstrumentation:
    return RecordingInstrumentation()


@pytest.fixture
def registry(memory_store, instrumentation) -> TopicRegistry:
    return TopicRegistry(
        memory_store,
        voting_base_url="http://localhost:3001/vote",
        instrumentation=instrumentation,
    )


@pytest.fixture
def ledger(memory_store, instrumentation) -> VoteLedger:
    return VoteLedger(memory_store, instrumentation=instrumentation)


@pytest.fixture
def app(test_settings, memory_store, instrumentation):
    return create_app(test_settings, store=memory_store, instrumentation=instrumentation)


@pytest.fixture
async def api_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def pizza_topic() -> dict:
    return {"topic": "pizza", "description": "Is pizza a vegetable?"}


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "docker: mark test as requiring a running API and Redis"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running"
    )
