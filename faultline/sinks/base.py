"""Base classes and registry for alert sinks.

A sink formats one drained batch into a channel-appropriate payload and
performs a single outbound call per flush cycle.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..config import ChannelConfig, SinkKind
from ..models import Batch, ErrorEntry


class AlertSink(ABC):
    """Abstract base class for alert sinks."""

    kind: SinkKind

    def __init__(self, channel: ChannelConfig):
        self.channel = channel
        self.name = channel.name or channel.kind.value
        self.timeout_seconds = channel.timeout_seconds
        self.dashboard_url = channel.dashboard_url
        self.max_entries = channel.max_entries
        self.max_stack_trace_chars = channel.max_stack_trace_chars
        self.max_message_chars = channel.max_message_chars

    @abstractmethod
    async def send(self, batch: Batch) -> Optional[Dict[str, Any]]:
        """Deliver a batch to the channel in one outbound call.

        Implementations must not mutate the batch.

        Args:
            batch: Drained, non-empty batch

        Returns:
            Optional response metadata for dispatch results

        Raises:
            SinkError: If delivery fails
        """
        pass

    @abstractmethod
    def validate_config(self) -> List[str]:
        """Validate sink configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        pass

    async def close(self) -> None:
        """Release client resources."""

    # Formatting helpers shared by the concrete sinks

    def _title(self, batch: Batch) -> str:
        unique = len(batch)
        noun = "error" if batch.total_count == 1 else "errors"
        return f"{batch.total_count} {noun} captured ({unique} unique)"

    def _visible_entries(self, batch: Batch) -> Tuple[List[ErrorEntry], int]:
        """Entries to render, most frequent first, plus the hidden remainder."""
        ranked = sorted(batch.entries, key=lambda entry: entry.count, reverse=True)
        visible = ranked[:self.max_entries]
        return visible, len(ranked) - len(visible)

    def _message(self, entry: ErrorEntry) -> str:
        message = entry.exception.message
        if len(message) > self.max_message_chars:
            return message[:self.max_message_chars] + "..."
        return message

    def _stack_trace(self, entry: ErrorEntry) -> str:
        stack_trace = entry.exception.stack_trace or "No stack trace available."
        if len(stack_trace) > self.max_stack_trace_chars:
            return stack_trace[:self.max_stack_trace_chars] + "\n..."
        return stack_trace

    def _request_line(self, entry: ErrorEntry) -> str:
        request = entry.sample_request
        if not request.url and not request.method:
            return "(no request)"
        return f"{request.method} {request.url}".strip()


class AlertSinkRegistry:
    """Registry for managing alert sink types."""

    def __init__(self):
        self._sinks: Dict[SinkKind, type] = {}

    def register(self, kind: SinkKind, sink_class: type) -> None:
        """Register an alert sink class.

        Args:
            kind: Channel kind handled by the sink
            sink_class: Sink class to register
        """
        if not issubclass(sink_class, AlertSink):
            raise ValueError(f"Sink class must inherit from AlertSink: {sink_class}")

        self._sinks[kind] = sink_class

    def get_sink_class(self, kind: SinkKind) -> Optional[type]:
        return self._sinks.get(kind)

    def create_sink(self, channel: ChannelConfig, **kwargs) -> AlertSink:
        """Create sink instance for a configured channel.

        Args:
            channel: Channel configuration
            **kwargs: Extra constructor arguments (e.g. an injected client)

        Returns:
            Sink instance

        Raises:
            ValueError: If no sink is registered for the channel kind
        """
        sink_class = self.get_sink_class(channel.kind)
        if not sink_class:
            raise ValueError(f"Unknown sink kind: {channel.kind}")

        return sink_class(channel, **kwargs)

    def list_sink_kinds(self) -> List[SinkKind]:
        return list(self._sinks.keys())


sink_registry = AlertSinkRegistry()


def register_sink(kind: SinkKind):
    """Decorator to register an alert sink class.

    Args:
        kind: Channel kind handled by the decorated sink
    """
    def decorator(sink_class: type) -> type:
        sink_registry.register(kind, sink_class)
        sink_class.kind = kind
        return sink_class

    return decorator
