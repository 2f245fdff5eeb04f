"""Aggregation store backends.

This package provides the concurrency-safe fingerprint → entry store with
three interchangeable backends:
- In-memory with striped locking for single-process deployments
- Redis for sharing one pending batch across processes
- Relational (PostgreSQL/SQLite) through SQLAlchemy asyncio
"""

import logging
from typing import Optional, Union

from .base import AggregationStore, StorageBackend
from .database import Base, DatabaseConfig
from .memory import InMemoryAggregationStore
from .redis_store import RedisAggregationStore
from .relational import ErrorEntryRecord, SQLAlchemyAggregationStore
from ..errors import ConfigurationError


logger = logging.getLogger(__name__)


def create_aggregation_store(
    backend: Union[StorageBackend, str] = StorageBackend.MEMORY,
    connection_string: Optional[str] = None,
    **kwargs
) -> AggregationStore:
    """Create an aggregation store for the selected backend.

    Args:
        backend: Backend type ('memory', 'redis' or 'relational')
        connection_string: Redis URL or database URL for remote backends
        **kwargs: Additional backend parameters

    Returns:
        Configured AggregationStore

    Raises:
        ConfigurationError: If the backend is unknown or lacks a connection string
    """
    # Accept alias 'in_memory' for convenience
    if backend == "in_memory":
        backend = StorageBackend.MEMORY

    try:
        backend = StorageBackend(backend)
    except ValueError:
        raise ConfigurationError(f"Invalid storage backend: {backend}")

    if backend == StorageBackend.MEMORY:
        store: AggregationStore = InMemoryAggregationStore(**kwargs)
    elif not connection_string:
        raise ConfigurationError(f"Storage backend '{backend.value}' requires a connection string")
    elif backend == StorageBackend.REDIS:
        store = RedisAggregationStore(redis_url=connection_string, **kwargs)
    else:
        store = SQLAlchemyAggregationStore(url=connection_string, **kwargs)

    logger.info(f"Created {backend.value} aggregation store")
    return store


__all__ = [
    'AggregationStore',
    'StorageBackend',
    'Base',
    'DatabaseConfig',
    'InMemoryAggregationStore',
    'RedisAggregationStore',
    'SQLAlchemyAggregationStore',
    'ErrorEntryRecord',
    'create_aggregation_store',
]
