"""Capture exceptions attached to error-level log records.

``ErrorLogHandler`` lets applications that already log failures with
``logger.exception(...)`` feed them into the error pipeline without
wrapping their own handlers. Records may be emitted from any thread; the
capture itself always runs on the pipeline's event loop.
"""

import asyncio
import logging
from concurrent.futures import Future
from typing import Optional, Set

from .models import ExceptionInfo, RequestInfo
from .pipeline import ErrorPipeline


class ErrorLogHandler(logging.Handler):
    """Logging handler forwarding ``record.exc_info`` to an ErrorPipeline."""

    def __init__(
        self,
        pipeline: ErrorPipeline,
        level: int = logging.ERROR,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        """Initialize handler.

        Args:
            pipeline: Pipeline receiving captured exceptions
            level: Minimum record level to capture
            loop: Loop the pipeline runs on. Defaults to the running loop.
        """
        super().__init__(level)
        self.pipeline = pipeline
        self.loop = loop or asyncio.get_running_loop()
        self._pending: Set[Future] = set()

    def emit(self, record: logging.LogRecord) -> None:
        if not record.exc_info or record.exc_info[1] is None:
            return
        # Records from the pipeline itself would feed back into it
        if record.name == "faultline" or record.name.startswith("faultline."):
            return

        coro = None
        try:
            exception = ExceptionInfo.from_exception(record.exc_info[1])
            coro = self.pipeline.record_info(exception, RequestInfo.empty())
            future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        except Exception:
            if coro is not None:
                coro.close()
            self.handleError(record)
            return

        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def wait_pending(self) -> None:
        """Wait until every forwarded record has reached the store."""
        if self._pending:
            await asyncio.gather(*(asyncio.wrap_future(f) for f in list(self._pending)))
