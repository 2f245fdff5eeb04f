"""Fan-out of drained batches to every configured alert sink.

Each sink is delivered to concurrently under its own timeout. A failing or
slow sink is recorded as a failed ``SinkResult`` and never prevents the
other sinks from receiving the batch. Nothing is retried.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .errors import SinkError, SinkTimeoutError
from .models import Batch, utcnow
from .sinks.base import AlertSink


logger = logging.getLogger(__name__)


class SinkResult(BaseModel):
    """Outcome of delivering one batch to one sink."""

    sink_name: str = Field(description="Configured channel name")
    sink_kind: str = Field(description="Channel kind")
    success: bool = Field(description="Whether delivery succeeded")
    error_message: Optional[str] = Field(
        default=None,
        description="Error message if delivery failed"
    )
    response_time_ms: Optional[float] = Field(
        default=None,
        description="Time spent in the sink in milliseconds"
    )
    response_data: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Response metadata reported by the sink"
    )


class DispatchResult(BaseModel):
    """Outcome of one fan-out across all sinks."""

    batch_size: int = Field(default=0, description="Unique entries in the batch")
    total_count: int = Field(default=0, description="Total occurrences in the batch")
    results: List[SinkResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> List[SinkResult]:
        return [result for result in self.results if result.success]

    @property
    def failed(self) -> List[SinkResult]:
        return [result for result in self.results if not result.success]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class AlertDispatcher:
    """Delivers a batch to all enabled sinks concurrently."""

    def __init__(self, sinks: Optional[Iterable[AlertSink]] = None):
        self.sinks: List[AlertSink] = []
        for sink in sinks or []:
            if not sink.channel.enabled:
                logger.info(f"Skipping disabled alert channel {sink.name}")
                continue
            self.sinks.append(sink)

    async def dispatch(self, batch: Batch) -> DispatchResult:
        """Send the batch to every sink and collect per-sink results.

        Never raises for sink failures; cancellation of the caller still
        propagates.
        """
        result = DispatchResult(batch_size=len(batch), total_count=batch.total_count)

        if self.sinks:
            result.results = list(await asyncio.gather(
                *(self._run_sink(sink, batch) for sink in self.sinks)
            ))

        result.completed_at = utcnow()

        failed = result.failed
        if failed:
            logger.warning(
                f"Dispatched batch of {result.batch_size} entries: "
                f"{len(result.succeeded)} sinks succeeded, {len(failed)} failed "
                f"({', '.join(r.sink_name for r in failed)})"
            )
        else:
            logger.info(f"Dispatched batch of {result.batch_size} entries to {len(result.results)} sinks")

        return result

    async def _run_sink(self, sink: AlertSink, batch: Batch) -> SinkResult:
        start_time = time.time()

        def _elapsed_ms() -> float:
            return (time.time() - start_time) * 1000

        try:
            response_data = await asyncio.wait_for(sink.send(batch), timeout=sink.timeout_seconds)
        except asyncio.TimeoutError:
            error = SinkTimeoutError(
                f"{sink.name} did not complete within {sink.timeout_seconds}s",
                sink_name=sink.name
            )
            logger.warning(str(error))
            return self._failure(sink, error, _elapsed_ms())
        except SinkError as e:
            logger.warning(f"Alert sink {sink.name} failed: {e}")
            return self._failure(sink, e, _elapsed_ms())
        except Exception as e:
            logger.exception(f"Unexpected error in alert sink {sink.name}")
            return self._failure(sink, e, _elapsed_ms())

        return SinkResult(
            sink_name=sink.name,
            sink_kind=sink.kind.value,
            success=True,
            response_time_ms=_elapsed_ms(),
            response_data=response_data,
        )

    def _failure(self, sink: AlertSink, error: Exception, elapsed_ms: float) -> SinkResult:
        return SinkResult(
            sink_name=sink.name,
            sink_kind=sink.kind.value,
            success=False,
            error_message=str(error) or type(error).__name__,
            response_time_ms=elapsed_ms,
        )

    async def close(self) -> None:
        """Close every sink's client resources."""
        for sink in self.sinks:
            try:
                await sink.close()
            except Exception as e:
                logger.warning(f"Error closing alert sink {sink.name}: {e}")
