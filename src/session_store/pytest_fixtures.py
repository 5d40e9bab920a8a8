"""Shared pytest fixtures: Redis testcontainer, async client and session adapter."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
from testcontainers.redis import RedisContainer

from session_store.adapter import SessionStoreAdapter


def _redis_url_from_container(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}"


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    """Start a Redis container for the test session. Skips if Docker is unavailable."""
    try:
        container = RedisContainer("redis:7-alpine")
        with container:
            yield container
    except Exception as e:  # noqa: BLE001
        pytest.skip(f"Docker not available: {e}")


@pytest.fixture
def redis_url(redis_container: RedisContainer) -> str:
    """Connection URL for the session Redis container."""
    return _redis_url_from_container(redis_container)


@pytest.fixture
async def redis_client(redis_url: str) -> AsyncGenerator[Any, None]:
    """Async Redis client (decode_responses=True). Flushes the DB after each test."""
    from redis.asyncio import Redis

    client = Redis.from_url(redis_url, decode_responses=True)
    await client.flushdb()
    yield client
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def adapter(redis_client: Any) -> SessionStoreAdapter:
    """Adapter with default options over the test Redis."""
    return SessionStoreAdapter(redis_client)
