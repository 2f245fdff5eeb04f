"""Capture entry point tying the store, dispatcher and scheduler together.

``ErrorPipeline.record`` is safe to call from any request handler: it
fingerprints the exception, records it in the aggregation store and never
raises into the caller. The background scheduler periodically drains the
store and fans the batch out to the configured alert sinks.
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from .config import FaultlineSettings, load_settings
from .dispatcher import AlertDispatcher, DispatchResult
from .errors import CaptureError, ConfigurationError
from .models import ExceptionInfo, RequestInfo
from .scheduler import FlushScheduler, FlushStats
from .sinks import AlertSink, create_sink
from .storage import AggregationStore, create_aggregation_store


logger = logging.getLogger(__name__)


class ErrorPipeline:
    """Aggregates captured exceptions and alerts on a fixed interval."""

    def __init__(
        self,
        store: AggregationStore,
        dispatcher: AlertDispatcher,
        flush_interval_seconds: float = 1800.0,
        shutdown_timeout_seconds: float = 30.0
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.scheduler = FlushScheduler(
            store,
            dispatcher,
            interval_seconds=flush_interval_seconds,
            final_flush_timeout_seconds=shutdown_timeout_seconds
        )
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self._started = False

    async def record(
        self,
        exception: BaseException,
        request: Optional[RequestInfo] = None
    ) -> bool:
        """Record one occurrence of a raised exception.

        Args:
            exception: The exception caught by the host application
            request: Triggering request, if any

        Returns:
            True if the occurrence was stored, False if capture failed
        """
        try:
            info = ExceptionInfo.from_exception(exception)
        except Exception as e:
            self._log_capture_failure(CaptureError(f"Could not describe exception: {e}"))
            return False
        return await self.record_info(info, request)

    async def record_info(
        self,
        exception: ExceptionInfo,
        request: Optional[RequestInfo] = None
    ) -> bool:
        """Record an already-described exception. Never raises."""
        try:
            await self.store.add(exception, request if request is not None else RequestInfo.empty())
            return True
        except Exception as e:
            self._log_capture_failure(CaptureError(f"Failed to record {exception.type_name}: {e}"))
            return False

    def _log_capture_failure(self, error: CaptureError) -> None:
        logger.error(f"Error capture dropped: {error}")

    async def start(self) -> None:
        """Prepare the store and start the flush scheduler."""
        if self._started:
            return
        await self.store.initialize()
        await self.scheduler.start()
        self._started = True
        logger.info(
            f"Error pipeline started ({self.store.backend_type.value} store, "
            f"{len(self.dispatcher.sinks)} sinks)"
        )

    async def stop(self) -> Optional[DispatchResult]:
        """Stop the scheduler, run the final flush and release resources."""
        if not self._started:
            return None
        self._started = False

        result = await self.scheduler.stop(self.shutdown_timeout_seconds)
        await self.dispatcher.close()
        await self.store.close()

        logger.info("Error pipeline stopped")
        return result

    async def flush(self) -> Optional[DispatchResult]:
        """Run a flush cycle now."""
        return await self.scheduler.flush()

    def get_stats(self) -> FlushStats:
        return self.scheduler.get_stats()

    async def health_check(self) -> Dict[str, Any]:
        """Report store health and scheduler state."""
        store_health = await self.store.health_check()
        stats = self.scheduler.get_stats()
        return {
            "healthy": store_health.get("status") == "healthy",
            "running": self.scheduler.is_running,
            "flush_state": self.scheduler.state.value,
            "storage": store_health,
            "sinks": [sink.name for sink in self.dispatcher.sinks],
            "last_flush_time": stats.last_flush_time.isoformat() if stats.last_flush_time else None,
            "dropped_ticks": stats.dropped_ticks,
            "storage_failures": stats.storage_failures,
        }

    async def __aenter__(self) -> "ErrorPipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


def build_sinks(
    settings: FaultlineSettings,
    sink_kwargs: Optional[Mapping[str, Dict[str, Any]]] = None
) -> Iterable[AlertSink]:
    """Create and validate a sink for every enabled channel.

    Args:
        settings: Pipeline settings
        sink_kwargs: Extra constructor arguments keyed by channel name

    Raises:
        ConfigurationError: If any sink reports configuration problems
    """
    sink_kwargs = sink_kwargs or {}
    sinks = []
    for channel in settings.channels:
        if not channel.enabled:
            continue
        sink = create_sink(channel, **sink_kwargs.get(channel.name, {}))
        errors = sink.validate_config()
        if errors:
            raise ConfigurationError(f"Invalid alert channel '{channel.name}': {'; '.join(errors)}")
        sinks.append(sink)
    return sinks


def create_pipeline(
    settings: Optional[FaultlineSettings] = None,
    store: Optional[AggregationStore] = None,
    sink_kwargs: Optional[Mapping[str, Dict[str, Any]]] = None
) -> ErrorPipeline:
    """Create a pipeline from settings.

    Args:
        settings: Pipeline settings (loaded with ``load_settings`` if None)
        store: Pre-built store, overriding ``settings.storage``
        sink_kwargs: Extra sink constructor arguments keyed by channel name

    Raises:
        ConfigurationError: If settings or any alert channel are invalid
    """
    if settings is None:
        settings = load_settings()

    if store is None:
        store = create_aggregation_store(
            settings.storage.backend,
            settings.storage.connection_string,
            **settings.storage.store_kwargs()
        )

    dispatcher = AlertDispatcher(build_sinks(settings, sink_kwargs))
    if not dispatcher.sinks:
        logger.warning("No alert channels configured; drained batches will be discarded")

    return ErrorPipeline(
        store,
        dispatcher,
        flush_interval_seconds=settings.flush_interval_seconds,
        shutdown_timeout_seconds=settings.shutdown_timeout_seconds
    )
