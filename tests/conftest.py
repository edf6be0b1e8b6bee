"""
This file contains shared fixtures for the test suite.
"""

import os

import pytest
import pytest_asyncio

# Set env vars before any application modules are imported
os.environ.setdefault("DATABASE_URL", ":memory:")
os.environ.setdefault("PYTHONIOENCODING", "utf-8")

from campus_store.config import get_settings
from campus_store.db import ConnectionPool, Storage


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make every test read the environment afresh."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def pool():
    """A freshly bootstrapped in-memory database for each test."""
    db_pool = ConnectionPool(":memory:")
    await db_pool.open()
    try:
        yield db_pool
    finally:
        await db_pool.close()


@pytest_asyncio.fixture
async def storage(pool):
    return Storage(pool)


@pytest_asyncio.fixture
async def campus(storage):
    return await storage.create_campus({"name": "North Campus", "location": "Building A"})


@pytest_asyncio.fixture
async def user(storage):
    return await storage.create_user({"email": "student@example.edu", "name": "Sam Student"})


@pytest.fixture
def event_data(campus):
    """
    Factory for event payloads on the default campus.
    """

    def factory(**overrides):
        data = {
            "campus_id": campus.id,
            "title": "Intro to Robotics",
            "program_type": "workshop",
            "date_time": "2024-03-15T12:00:00+00:00",
        }
        data.update(overrides)
        return data

    return factory
