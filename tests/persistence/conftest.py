"""Test configuration and fixtures for relational store tests."""

from pathlib import Path
from typing import AsyncGenerator

import pytest_asyncio

from faultline.storage.database import DatabaseConfig
from faultline.storage.relational import SQLAlchemyAggregationStore


@pytest_asyncio.fixture(scope="function")
async def test_db_config() -> AsyncGenerator[DatabaseConfig, None]:
    """Create test database configuration with in-memory SQLite."""
    # Use in-memory SQLite for fast tests
    config = DatabaseConfig(
        url="sqlite+aiosqlite:///:memory:",
        echo=False
    )

    await config.create_all()

    yield config

    # Cleanup
    await config.close()


@pytest_asyncio.fixture
async def relational_store(test_db_config: DatabaseConfig) -> SQLAlchemyAggregationStore:
    """Relational store on the in-memory database."""
    return SQLAlchemyAggregationStore(database=test_db_config, operation_timeout_seconds=10.0)


@pytest_asyncio.fixture
async def file_store(tmp_path: Path) -> AsyncGenerator[SQLAlchemyAggregationStore, None]:
    """Relational store on a file database, for tests using several connections."""
    store = SQLAlchemyAggregationStore(
        url=f"sqlite+aiosqlite:///{tmp_path / 'faultline.db'}",
        operation_timeout_seconds=30.0
    )
    await store.initialize()

    yield store

    await store.close()
