"""Redis-backed aggregation store for multi-process deployments."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from ..fingerprint import fingerprint
from ..models import Batch, ErrorEntry, ExceptionInfo, RequestInfo, utcnow
from .base import AggregationStore, StorageBackend


logger = logging.getLogger(__name__)


# All fields of the pending batch live in one hash so that a drain is a
# single atomic HGETALL + DEL.
ADD_SCRIPT = """
redis.call('HSETNX', KEYS[1], ARGV[1] .. ':entry', ARGV[2])
local count = redis.call('HINCRBY', KEYS[1], ARGV[1] .. ':count', 1)
local last = tonumber(redis.call('HGET', KEYS[1], ARGV[1] .. ':last_seen') or '0')
if tonumber(ARGV[3]) > last then
    redis.call('HSET', KEYS[1], ARGV[1] .. ':last_seen', ARGV[3])
end
return count
"""

DRAIN_SCRIPT = """
local data = redis.call('HGETALL', KEYS[1])
redis.call('DEL', KEYS[1])
return data
"""


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisAggregationStore(AggregationStore):
    """Aggregation store shared across processes through Redis."""

    backend_type = StorageBackend.REDIS

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "faultline:",
        operation_timeout_seconds: float = 2.0,
        client: Optional[Any] = None,
        **redis_kwargs
    ):
        """Initialize Redis store.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix for the batch hash key
            operation_timeout_seconds: Upper bound for a single Redis call
            client: Pre-built ``redis.asyncio`` client (takes precedence
                over ``redis_url``)
            **redis_kwargs: Additional Redis connection parameters
        """
        super().__init__(operation_timeout_seconds)
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.redis_kwargs = redis_kwargs
        self.batch_key = f"{key_prefix}batch"
        self._redis = client

    def _get_redis(self):
        """Get Redis client, creating it lazily."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=self.operation_timeout_seconds,
                socket_connect_timeout=self.operation_timeout_seconds,
                **self.redis_kwargs
            )
        return self._redis

    async def add(self, exception: ExceptionInfo, request: RequestInfo) -> None:
        """Record one occurrence through an atomic Lua script."""
        key = fingerprint(exception)
        now = utcnow()
        entry_json = json.dumps({
            'exception': exception.model_dump(),
            'sample_request': request.model_dump(),
            'first_seen': now.isoformat(),
        })

        await self._bounded(
            self._get_redis().eval(ADD_SCRIPT, 1, self.batch_key, key, entry_json, repr(now.timestamp())),
            "add"
        )

    async def drain_and_reset(self) -> Batch:
        """Read and delete the batch hash in one atomic script call."""
        raw = await self._bounded(
            self._get_redis().eval(DRAIN_SCRIPT, 1, self.batch_key),
            "drain"
        )
        drained_at = utcnow()

        fields: Dict[str, str] = {}
        items = list(raw or [])
        for i in range(0, len(items) - 1, 2):
            fields[_text(items[i])] = _text(items[i + 1])

        entries = self._parse_entries(fields)
        entries.sort(key=lambda entry: entry.first_seen)
        return Batch(entries=entries, drained_at=drained_at)

    def _parse_entries(self, fields: Dict[str, str]) -> List[ErrorEntry]:
        entries = []
        for field_name, value in fields.items():
            key, _, kind = field_name.rpartition(":")
            if kind != "entry":
                continue

            count = int(fields.get(f"{key}:count", "0"))
            if count < 1:
                logger.warning(f"Dropping Redis entry {key} with invalid count {count}")
                continue

            data = json.loads(value)
            first_seen = datetime.fromisoformat(data['first_seen'])
            last_seen_ts = fields.get(f"{key}:last_seen")
            last_seen = (
                datetime.fromtimestamp(float(last_seen_ts), tz=timezone.utc)
                if last_seen_ts else first_seen
            )

            entries.append(ErrorEntry(
                fingerprint=key,
                count=count,
                exception=ExceptionInfo(**data['exception']),
                sample_request=RequestInfo(**data['sample_request']),
                first_seen=first_seen,
                last_seen=max(first_seen, last_seen),
            ))

        return entries

    async def clear(self) -> None:
        await self._bounded(self._get_redis().delete(self.batch_key), "clear")

    async def pending_count(self) -> int:
        length = await self._bounded(self._get_redis().hlen(self.batch_key), "count")
        return int(length) // 3

    async def health_check(self) -> Dict[str, Any]:
        """Perform Redis health check."""
        try:
            start_time = time.time()
            await self._bounded(self._get_redis().ping(), "ping")
            ping_time = time.time() - start_time

            return {
                'backend_type': 'RedisAggregationStore',
                'backend': self.backend_type.value,
                'status': 'healthy',
                'ping_time_ms': round(ping_time * 1000, 2),
                'pending_fingerprints': await self.pending_count(),
                'url': self.redis_url
            }

        except Exception as e:
            return {
                'backend_type': 'RedisAggregationStore',
                'backend': self.backend_type.value,
                'status': 'unhealthy',
                'error': str(e),
                'url': self.redis_url
            }

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
