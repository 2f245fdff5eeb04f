"""In-process aggregation store with striped locking."""

import threading
from contextlib import ExitStack
from typing import Any, Dict, List

from ..fingerprint import fingerprint
from ..models import Batch, ErrorEntry, ExceptionInfo, RequestInfo, utcnow
from .base import AggregationStore, StorageBackend


class InMemoryAggregationStore(AggregationStore):
    """Aggregation store for single-process deployments.

    Entries are spread over ``shard_count`` shards, each guarded by its own
    ``threading.Lock``, so adds for different fingerprints rarely contend.
    A drain takes every shard lock in index order and swaps all shard maps
    in one step. Critical sections never await, which makes the store safe
    from asyncio tasks and from plain threads alike.
    """

    backend_type = StorageBackend.MEMORY

    def __init__(self, shard_count: int = 16, operation_timeout_seconds: float = 2.0):
        """Initialize in-memory store.

        Args:
            shard_count: Number of independently locked shards
            operation_timeout_seconds: Kept for interface parity; memory
                operations never block on I/O
        """
        if shard_count < 1:
            raise ValueError("shard_count must be >= 1")

        super().__init__(operation_timeout_seconds)
        self.shard_count = shard_count
        self._locks = [threading.Lock() for _ in range(shard_count)]
        self._shards: List[Dict[str, ErrorEntry]] = [{} for _ in range(shard_count)]

    def _shard_index(self, key: str) -> int:
        return int(key[:8], 16) % self.shard_count

    def add_nowait(self, exception: ExceptionInfo, request: RequestInfo) -> None:
        """Synchronous add for callers without an event loop."""
        key = fingerprint(exception)
        index = self._shard_index(key)

        with self._locks[index]:
            now = utcnow()
            shard = self._shards[index]
            entry = shard.get(key)
            if entry is None:
                shard[key] = ErrorEntry(
                    fingerprint=key,
                    count=1,
                    exception=exception,
                    sample_request=request,
                    first_seen=now,
                    last_seen=now,
                )
            else:
                entry.count += 1
                if now > entry.last_seen:
                    entry.last_seen = now

    async def add(self, exception: ExceptionInfo, request: RequestInfo) -> None:
        """Record one occurrence of an exception."""
        self.add_nowait(exception, request)

    async def drain_and_reset(self) -> Batch:
        """Swap out every shard under all shard locks."""
        with ExitStack() as stack:
            for lock in self._locks:
                stack.enter_context(lock)

            drained = self._shards
            self._shards = [{} for _ in range(self.shard_count)]
            drained_at = utcnow()

        entries = [entry for shard in drained for entry in shard.values()]
        entries.sort(key=lambda entry: entry.first_seen)
        return Batch(entries=entries, drained_at=drained_at)

    async def clear(self) -> None:
        with ExitStack() as stack:
            for lock in self._locks:
                stack.enter_context(lock)
            self._shards = [{} for _ in range(self.shard_count)]

    async def pending_count(self) -> int:
        with ExitStack() as stack:
            for lock in self._locks:
                stack.enter_context(lock)
            return sum(len(shard) for shard in self._shards)

    async def health_check(self) -> Dict[str, Any]:
        return {
            'backend_type': 'InMemoryAggregationStore',
            'backend': self.backend_type.value,
            'status': 'healthy',
            'shard_count': self.shard_count,
            'pending_fingerprints': await self.pending_count(),
        }
