"""Alert sinks for delivering drained batches.

Importing this package registers the Slack, Teams and SMTP email sinks
with ``sink_registry``.
"""

from .base import (
    AlertSink,
    AlertSinkRegistry,
    register_sink,
    sink_registry,
)
from .webhook import WebhookAlertSink

# Import concrete sink implementations to register them
from .slack import SlackAlertSink
from .teams import TeamsAlertSink
from .email import SMTPEmailAlertSink


def create_sink(channel, **kwargs) -> AlertSink:
    """Create the registered sink for a configured channel."""
    return sink_registry.create_sink(channel, **kwargs)


__all__ = [
    'AlertSink',
    'AlertSinkRegistry',
    'WebhookAlertSink',
    'SlackAlertSink',
    'TeamsAlertSink',
    'SMTPEmailAlertSink',
    'create_sink',
    'register_sink',
    'sink_registry',
]
