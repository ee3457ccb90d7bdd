"""Pytest fixtures for integration tests against a running stack.

Point ``API_BASE_URL`` (and ``REDIS_HOST``/``REDIS_PORT``) at the services;
tests skip when they cannot be reached.
"""

import os
import uuid
from typing import AsyncGenerator, Generator

import httpx
import pytest
import redis


@pytest.fixture(scope="session")
def base_url() -> str:
    """Base URL for the voting API."""
    return os.getenv("API_BASE_URL", "http://localhost:5000")


@pytest.fixture(scope="session")
def live_api(base_url: str) -> str:
    """Skip unless the API answers its health check."""
    try:
        response = httpx.get(f"{base_url}/api/health", timeout=2.0)
    except httpx.HTTPError:
        pytest.skip(f"Voting API not reachable at {base_url}")
    if response.status_code != 200:
        pytest.skip(f"Voting API at {base_url} is unhealthy")
    return base_url


@pytest.fixture
async def api_client(live_api: str) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for making API requests."""
    async with httpx.AsyncClient(base_url=live_api, timeout=10.0) as client:
        yield client


@pytest.fixture(scope="session")
def redis_client() -> Generator[redis.Redis, None, None]:
    """Redis client for direct assertions on the stored maps."""
    client = redis.Redis(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        db=int(os.getenv("REDIS_DB", "0")),
        decode_responses=True
    )

    try:
        client.ping()
    except redis.ConnectionError:
        pytest.skip("Redis not available")

    yield client

    client.close()


@pytest.fixture
def topic_name() -> str:
    """A topic name no other test run has used."""
    return f"it-{uuid.uuid4().hex[:12]}"
