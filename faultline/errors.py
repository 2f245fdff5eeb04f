"""Exception hierarchy for the error aggregation pipeline.

Capture and storage failures are converted into these types at the
AggregationStore/AlertDispatcher boundary so that the hosting application
only ever sees logged, typed results.
"""

from typing import Optional


class FaultlineError(Exception):
    """Base exception for all pipeline errors."""
    pass


class CaptureError(FaultlineError):
    """Exception raised when fingerprinting or recording an error fails."""
    pass


class StorageError(FaultlineError):
    """Exception raised when an aggregation store backend operation fails."""
    pass


class StorageTimeoutError(StorageError):
    """Exception raised when a storage operation exceeds its deadline."""
    pass


class SinkError(FaultlineError):
    """Exception raised when an alert sink fails to deliver a batch."""

    def __init__(self, message: str, sink_name: Optional[str] = None):
        super().__init__(message)
        self.sink_name = sink_name


class SinkTimeoutError(SinkError):
    """Exception raised when an alert sink exceeds its own timeout."""
    pass


class ConfigurationError(FaultlineError):
    """Exception raised when pipeline configuration is invalid at startup."""
    pass
