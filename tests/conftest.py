"""Shared test fixtures and configuration for Faultline tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from faultline.config import ChannelConfig, SinkKind
from faultline.errors import SinkError
from faultline.fingerprint import fingerprint
from faultline.models import Batch, ErrorEntry, ExceptionInfo, RequestInfo
from faultline.sinks.base import AlertSink
from faultline.storage.memory import InMemoryAggregationStore


class FakeSink(AlertSink):
    """Recording sink with configurable failure and delay."""

    kind = SinkKind.SLACK

    def __init__(
        self,
        name: str,
        fail: bool = False,
        delay: float = 0.0,
        timeout_seconds: float = 5.0,
        enabled: bool = True
    ):
        super().__init__(ChannelConfig(
            kind=SinkKind.SLACK,
            name=name,
            webhook_url="https://hooks.example.com/services/T000/B000/XXXX",
            timeout_seconds=timeout_seconds,
            enabled=enabled,
        ))
        self.fail = fail
        self.delay = delay
        self.batches: List[Batch] = []
        self.closed = False

    async def send(self, batch: Batch) -> Optional[Dict[str, Any]]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise SinkError(f"{self.name} is down", sink_name=self.name)
        self.batches.append(batch)
        return {"delivered": len(batch)}

    def validate_config(self) -> List[str]:
        return []

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_sink():
    """Factory for recording fake sinks."""
    return FakeSink


@pytest.fixture
def sample_exception():
    """ExceptionInfo with a realistic stack trace."""
    return ExceptionInfo(
        message="division by zero",
        stack_trace=(
            "Traceback (most recent call last):\n"
            "  File \"app/views.py\", line 42, in checkout\n"
            "    total = amount / quantity\n"
            "ZeroDivisionError: division by zero\n"
        ),
        type_name="ZeroDivisionError",
    )


@pytest.fixture
def sample_request():
    """Request sample with one sensitive header."""
    return RequestInfo.build(
        url="https://shop.example.com/checkout",
        method="post",
        headers={"Content-Type": "application/json", "Authorization": "Bearer secret"},
    )


@pytest.fixture
def make_entry():
    """Factory building ErrorEntry values with a correct fingerprint."""
    def _make(message: str = "boom", count: int = 1, stack_trace: str = "", url: str = "/"):
        exception = ExceptionInfo(message=message, stack_trace=stack_trace, type_name="RuntimeError")
        now = datetime.now(timezone.utc)
        return ErrorEntry(
            fingerprint=fingerprint(exception),
            count=count,
            exception=exception,
            sample_request=RequestInfo.build(url=url, method="GET"),
            first_seen=now - timedelta(minutes=5),
            last_seen=now,
        )

    return _make


@pytest.fixture
def make_batch(make_entry):
    """Factory building a Batch from (message, count) pairs."""
    def _make(*specs):
        return Batch(entries=[make_entry(message=message, count=count) for message, count in specs])

    return _make


@pytest_asyncio.fixture
async def memory_store():
    """In-memory aggregation store."""
    store = InMemoryAggregationStore(shard_count=4)
    yield store
    await store.close()


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
