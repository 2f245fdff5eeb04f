"""Periodic drain-and-dispatch loop.

The scheduler owns a single background task that drains the aggregation
store on a fixed cadence and hands each non-empty batch to the alert
dispatcher. Flush cycles never overlap: ticks that arrive while a flush is
still running are dropped and counted, and a manual ``flush()`` issued
during a cycle returns immediately.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .dispatcher import AlertDispatcher, DispatchResult
from .errors import StorageError
from .models import utcnow
from .storage.base import AggregationStore


logger = logging.getLogger(__name__)


class FlushState(str, Enum):
    """Scheduler flush state."""
    IDLE = "idle"
    FLUSHING = "flushing"


@dataclass
class FlushStats:
    """Statistics for flush scheduler operations."""

    cycles: int = 0
    empty_cycles: int = 0
    dispatched_batches: int = 0
    entries_dispatched: int = 0
    occurrences_dispatched: int = 0
    storage_failures: int = 0
    dropped_ticks: int = 0
    last_flush_time: Optional[datetime] = None
    last_flush_duration_ms: Optional[float] = None


class FlushScheduler:
    """Drains the store every ``interval_seconds`` and dispatches the batch."""

    def __init__(
        self,
        store: AggregationStore,
        dispatcher: AlertDispatcher,
        interval_seconds: float = 1800.0,
        final_flush_timeout_seconds: float = 30.0
    ):
        """Initialize scheduler.

        Args:
            store: Aggregation store to drain
            dispatcher: Dispatcher receiving non-empty batches
            interval_seconds: Cadence between flush cycles
            final_flush_timeout_seconds: Default deadline for the flush run by stop()
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.store = store
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.final_flush_timeout_seconds = final_flush_timeout_seconds

        self._state = FlushState.IDLE
        self._state_lock = threading.Lock()

        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

        self._stats = FlushStats()

    @property
    def state(self) -> FlushState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> FlushStats:
        """Get scheduler statistics."""
        return self._stats

    async def start(self) -> None:
        """Start the background flush loop."""
        if self._running:
            logger.warning("Flush scheduler is already running")
            return

        self._running = True
        self._shutdown_event.clear()
        self._loop_task = asyncio.create_task(self._flush_loop())

        logger.info(f"Flush scheduler started (interval: {self.interval_seconds}s)")

    async def stop(self, final_flush_timeout_seconds: Optional[float] = None) -> Optional[DispatchResult]:
        """Stop the loop and run one final best-effort flush.

        Args:
            final_flush_timeout_seconds: Deadline shared by the in-flight cycle
                and the final flush. Defaults to the configured value.

        Returns:
            Result of the final flush, or None if it was skipped or timed out
        """
        if not self._running:
            return None

        timeout = final_flush_timeout_seconds
        if timeout is None:
            timeout = self.final_flush_timeout_seconds
        deadline = time.monotonic() + timeout

        logger.info("Stopping flush scheduler")
        self._running = False
        self._shutdown_event.set()

        # Let an in-flight cycle finish so a drained batch is not abandoned
        if self._loop_task:
            try:
                await asyncio.wait_for(self._loop_task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Flush loop did not finish before shutdown deadline, cancelled")
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        result = None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("No time left for final flush")
        else:
            try:
                result = await asyncio.wait_for(self.flush(), timeout=remaining)
            except asyncio.TimeoutError:
                logger.warning(f"Final flush did not complete within {timeout}s")

        logger.info("Flush scheduler stopped")
        return result

    async def flush(self) -> Optional[DispatchResult]:
        """Run one drain-and-dispatch cycle.

        Returns:
            DispatchResult for the cycle (empty if nothing was pending), or
            None if another cycle is already running or the drain failed
        """
        with self._state_lock:
            if self._state == FlushState.FLUSHING:
                logger.debug("Flush already in progress, skipping")
                return None
            self._state = FlushState.FLUSHING

        started = time.time()
        try:
            return await self._flush_once()
        finally:
            self._stats.last_flush_time = utcnow()
            self._stats.last_flush_duration_ms = (time.time() - started) * 1000
            with self._state_lock:
                self._state = FlushState.IDLE

    async def _flush_once(self) -> Optional[DispatchResult]:
        self._stats.cycles += 1

        try:
            batch = await self.store.drain_and_reset()
        except StorageError as e:
            self._stats.storage_failures += 1
            logger.error(f"Failed to drain aggregation store, skipping cycle: {e}")
            return None

        if batch.is_empty:
            self._stats.empty_cycles += 1
            logger.debug("No errors captured since last flush")
            return DispatchResult()

        logger.info(f"Drained {len(batch)} unique errors ({batch.total_count} occurrences)")

        result = await self.dispatcher.dispatch(batch)

        self._stats.dispatched_batches += 1
        self._stats.entries_dispatched += len(batch)
        self._stats.occurrences_dispatched += batch.total_count
        return result

    async def _flush_loop(self) -> None:
        """Main loop firing ticks on a fixed cadence measured from start."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval_seconds

        while self._running:
            delay = next_tick - loop.time()
            if delay <= 0:
                # Every tick that elapsed while the previous cycle was running is dropped;
                # the next flush waits for the first boundary after now
                missed = int((loop.time() - next_tick) // self.interval_seconds) + 1
                self._stats.dropped_ticks += missed
                logger.warning(f"Flush overran the interval, dropped {missed} ticks")
                next_tick += missed * self.interval_seconds
                continue

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
                break  # Shutdown requested
            except asyncio.TimeoutError:
                pass

            next_tick += self.interval_seconds

            try:
                if self.state == FlushState.FLUSHING:
                    self._stats.dropped_ticks += 1
                    logger.warning("Flush already in progress at tick, dropping tick")
                    continue
                await self.flush()
            except Exception as e:
                logger.error(f"Error in flush loop: {e}", exc_info=True)
