"""Faultline: interval-based error aggregation and alerting.

This package captures exceptions raised while serving requests, collapses
repeats of the same failure into one counted entry, and periodically sends
a single summary per configured channel:
- Deterministic fingerprinting of exception message and stack trace
- Concurrency-safe aggregation in memory, Redis or a relational database
- Non-overlapping flush scheduling with a final flush on shutdown
- Isolated fan-out to Slack, Microsoft Teams and SMTP email sinks
"""

from .config import (
    ChannelConfig,
    EmailSettings,
    FaultlineSettings,
    SinkKind,
    SMTPSettings,
    StorageSettings,
    load_settings,
)

from .errors import (
    CaptureError,
    ConfigurationError,
    FaultlineError,
    SinkError,
    SinkTimeoutError,
    StorageError,
    StorageTimeoutError,
)

from .models import (
    Batch,
    ErrorEntry,
    ExceptionInfo,
    RequestInfo,
)

from .fingerprint import fingerprint, fingerprint_exception

from .storage import (
    AggregationStore,
    InMemoryAggregationStore,
    RedisAggregationStore,
    SQLAlchemyAggregationStore,
    StorageBackend,
    create_aggregation_store,
)

from .sinks import (
    AlertSink,
    SlackAlertSink,
    SMTPEmailAlertSink,
    TeamsAlertSink,
    create_sink,
    register_sink,
)

from .dispatcher import AlertDispatcher, DispatchResult, SinkResult
from .scheduler import FlushScheduler, FlushState, FlushStats
from .pipeline import ErrorPipeline, build_sinks, create_pipeline
from .log_handler import ErrorLogHandler


__version__ = "0.1.0"

__all__ = [
    # Configuration
    'ChannelConfig',
    'EmailSettings',
    'FaultlineSettings',
    'SinkKind',
    'SMTPSettings',
    'StorageSettings',
    'load_settings',

    # Errors
    'CaptureError',
    'ConfigurationError',
    'FaultlineError',
    'SinkError',
    'SinkTimeoutError',
    'StorageError',
    'StorageTimeoutError',

    # Models
    'Batch',
    'ErrorEntry',
    'ExceptionInfo',
    'RequestInfo',
    'fingerprint',
    'fingerprint_exception',

    # Storage
    'AggregationStore',
    'InMemoryAggregationStore',
    'RedisAggregationStore',
    'SQLAlchemyAggregationStore',
    'StorageBackend',
    'create_aggregation_store',

    # Sinks
    'AlertSink',
    'SlackAlertSink',
    'SMTPEmailAlertSink',
    'TeamsAlertSink',
    'create_sink',
    'register_sink',

    # Flush pipeline
    'AlertDispatcher',
    'DispatchResult',
    'SinkResult',
    'FlushScheduler',
    'FlushState',
    'FlushStats',
    'ErrorPipeline',
    'build_sinks',
    'create_pipeline',
    'ErrorLogHandler',
]
