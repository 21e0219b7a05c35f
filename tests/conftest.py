import os
from typing import AsyncGenerator

import asyncpg
import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from placeflow.config import settings
from placeflow.db.db import _init_connection

SCHEMA_PATH = os.path.join(
    os.path.dirname(__file__), "..", "placeflow", "db", "models", "places.sql"
)


@pytest.fixture(scope="session")
def postgres_container():
    """Start a PostgreSQL container for integration tests."""
    postgres = PostgresContainer(
        image="postgres:16-alpine",
        username="testuser",
        password="testpass",
        dbname="testdb",
        driver="asyncpg",
    )
    postgres.start()

    yield postgres

    postgres.stop()


@pytest_asyncio.fixture(scope="function")
async def test_db_pool(postgres_container) -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a test database pool with the directory schema for each test."""
    pool = await asyncpg.create_pool(
        host=postgres_container.get_container_host_ip(),
        port=postgres_container.get_exposed_port(5432),
        database=postgres_container.dbname,
        user=postgres_container.username,
        password=postgres_container.password,
        min_size=1,
        max_size=5,
        init=_init_connection,
    )

    async with pool.acquire() as conn:
        with open(SCHEMA_PATH, "r") as f:
            await conn.execute(f.read())

    yield pool

    await pool.close()


@pytest_asyncio.fixture
async def clean_db(test_db_pool):
    """Clean all data from tables before each test."""
    async with test_db_pool.acquire() as conn:
        await conn.execute(
            "TRUNCATE TABLE place_categories, places, categories, cities, provinces, countries "
            "RESTART IDENTITY CASCADE"
        )


@pytest.fixture
def mock_settings(monkeypatch, postgres_container):
    """Point settings at the test container."""
    monkeypatch.setattr(settings, "database_host", postgres_container.get_container_host_ip())
    monkeypatch.setattr(settings, "database_port", int(postgres_container.get_exposed_port(5432)))
    monkeypatch.setattr(settings, "database_name", postgres_container.dbname)
    monkeypatch.setattr(settings, "database_user", postgres_container.username)
    monkeypatch.setattr(settings, "database_password", postgres_container.password)
    return settings
