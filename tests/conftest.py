"""Shared fixtures: every test runs against an in-memory store."""

import pytest
import pytest_asyncio

from docsync import DocSync, MemoryDriver, MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def driver(store):
    return MemoryDriver(store)


@pytest_asyncio.fixture
async def client(driver):
    db = DocSync(driver=driver)
    yield db
    await db.close()


@pytest.fixture
def engine(client):
    return client.engine
