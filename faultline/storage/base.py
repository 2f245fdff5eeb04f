"""Abstract aggregation store contract shared by all storage backends."""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Dict, TypeVar

from ..errors import StorageError, StorageTimeoutError
from ..models import Batch, ExceptionInfo, RequestInfo


T = TypeVar("T")


class StorageBackend(str, Enum):
    """Supported aggregation store backends."""
    MEMORY = "memory"
    REDIS = "redis"
    RELATIONAL = "relational"


class AggregationStore(ABC):
    """Concurrency-safe mapping from fingerprint to aggregated error entry.

    Implementations must guarantee that concurrent ``add`` calls for the same
    fingerprint never lose an increment, and that ``drain_and_reset`` is
    atomic relative to any in-flight ``add``: each add lands either in the
    drained batch or in the fresh store, never both and never neither.
    """

    backend_type: StorageBackend

    def __init__(self, operation_timeout_seconds: float = 2.0):
        """Initialize store.

        Args:
            operation_timeout_seconds: Upper bound for a single backend call
        """
        self.operation_timeout_seconds = operation_timeout_seconds

    @abstractmethod
    async def add(self, exception: ExceptionInfo, request: RequestInfo) -> None:
        """Record one occurrence of an exception.

        The first add for a fingerprint creates the entry with ``request`` as
        its sample; later adds only increment the count and move
        ``last_seen`` forward.

        Args:
            exception: Captured exception
            request: Triggering request sample

        Raises:
            StorageError: If the backend is unavailable or times out
        """
        pass

    @abstractmethod
    async def drain_and_reset(self) -> Batch:
        """Atomically take every entry and leave the store empty.

        Returns:
            Batch holding the drained entries (possibly empty)

        Raises:
            StorageError: If the backend is unavailable or times out
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Discard every pending entry.

        Raises:
            StorageError: If the backend is unavailable or times out
        """
        pass

    @abstractmethod
    async def pending_count(self) -> int:
        """Number of fingerprints currently held."""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Perform backend health check.

        Returns:
            Health status information
        """
        pass

    async def initialize(self) -> None:
        """Prepare backend resources before the first add."""

    async def close(self) -> None:
        """Close backend connections."""

    async def _bounded(self, operation: Awaitable[T], action: str) -> T:
        """Await a backend call under the store's operation timeout."""
        try:
            return await asyncio.wait_for(operation, timeout=self.operation_timeout_seconds)
        except asyncio.TimeoutError:
            raise StorageTimeoutError(
                f"{self.backend_type.value} store {action} timed out after "
                f"{self.operation_timeout_seconds}s"
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"{self.backend_type.value} store {action} failed: {e}") from e
