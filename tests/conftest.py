"""
Test configuration and fixtures for the URL shortener.
This centralizes all test setup, making individual tests clean.

Async code is driven with asyncio.run() inside plain tests. Store instances
that hold loop-bound resources (Redis connections, watch queues) are built
inside the coroutine through the store_factory fixture.
"""

import asyncio
import os

import pytest
from fastapi.testclient import TestClient

from main import app
from shortlink_app.dependencies import get_store
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.link_service import LinkService
from shortlink_app.store.strategies import (
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    SQLAlchemyKeyValueStore,
)

# Opt-in: Redis tests flush this database, so it must be a scratch one
TEST_REDIS_URL = os.environ.get("TEST_REDIS_URL")


@pytest.fixture(scope="function")
def store():
    """Fresh in-memory store for each test"""
    return InMemoryKeyValueStore()


@pytest.fixture(scope="function")
def sql_store(tmp_path):
    """SQLite-backed store in a temporary directory"""
    kv = SQLAlchemyKeyValueStore(f"sqlite:///{tmp_path / 'kv.db'}")
    yield kv
    kv.engine.dispose()


@pytest.fixture(scope="function")
def service(store):
    """LinkService on the in-memory store, click retries without backoff delays"""
    recorder = ClickRecorder(store, base_delay=0, max_delay=0)
    return LinkService(store=store, click_recorder=recorder)


async def _redis_store():
    import redis.asyncio as redis

    client = redis.from_url(TEST_REDIS_URL, decode_responses=True)
    await client.flushdb()
    return RedisKeyValueStore(client)


def _redis_reachable() -> bool:
    if not TEST_REDIS_URL:
        return False

    async def probe():
        kv = await _redis_store()
        try:
            return await kv.ping()
        finally:
            await kv.close()

    try:
        return asyncio.run(probe())
    except Exception:
        return False


@pytest.fixture(params=["memory", "sqlalchemy", "redis"])
def store_factory(request, tmp_path):
    """
    Async factory for each store backend; call it inside the running loop.

    Redis runs only when TEST_REDIS_URL points at a reachable server.
    """
    if request.param == "memory":
        async def factory():
            return InMemoryKeyValueStore()
    elif request.param == "sqlalchemy":
        async def factory():
            return SQLAlchemyKeyValueStore(f"sqlite:///{tmp_path / 'kv.db'}")
    else:
        if not _redis_reachable():
            pytest.skip("Redis not available (set TEST_REDIS_URL)")
        factory = _redis_store
    return factory


@pytest.fixture(scope="function")
def client(store):
    """
    Create a test client with the store dependency overridden.
    This is the main fixture that API tests will use.
    """
    app.dependency_overrides[get_store] = lambda: store

    with TestClient(app) as test_client:
        yield test_client

    # Clean up overrides
    app.dependency_overrides.clear()
