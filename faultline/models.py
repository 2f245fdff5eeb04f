"""Value types flowing through the aggregation and dispatch pipeline.

Exceptions are captured eagerly into plain ``ExceptionInfo`` values so that
entries survive serialization to a remote store and reconstruction on the
flush side without any reference to a live exception object.
"""

import traceback
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, Field


REDACTED_VALUE = "[REDACTED]"

DEFAULT_REDACTED_HEADERS = frozenset({
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
})


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class ExceptionInfo(BaseModel):
    """Immutable snapshot of an exception taken at capture time."""

    model_config = {"frozen": True}

    message: str = Field(description="Exception message")
    stack_trace: str = Field(
        default="",
        description="Formatted stack trace (empty when unavailable)"
    )
    type_name: str = Field(
        default="Exception",
        description="Exception class name"
    )

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ExceptionInfo":
        """Capture message, stack trace and type name from a live exception.

        Args:
            exc: Exception to snapshot

        Returns:
            ExceptionInfo with an empty stack trace if the exception was
            never raised
        """
        stack_trace = ""
        if exc.__traceback__ is not None:
            stack_trace = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )

        return cls(
            message=str(exc),
            stack_trace=stack_trace,
            type_name=type(exc).__name__,
        )


class RequestInfo(BaseModel):
    """Sample of the request that triggered an error."""

    model_config = {"frozen": True}

    url: str = Field(default="", description="Request URL or path")
    method: str = Field(default="", description="HTTP method")
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Request headers in arrival order"
    )

    @classmethod
    def build(
        cls,
        url: str,
        method: str,
        headers: Optional[Iterable] = None,
        redact: Iterable[str] = DEFAULT_REDACTED_HEADERS,
    ) -> "RequestInfo":
        """Build a RequestInfo, masking sensitive header values.

        Args:
            url: Request URL or path
            method: HTTP method
            headers: Mapping or iterable of (name, value) pairs
            redact: Header names (case-insensitive) whose values are masked

        Returns:
            RequestInfo safe to persist in a shared store
        """
        redacted = {name.lower() for name in redact}
        pairs = headers.items() if hasattr(headers, "items") else (headers or [])

        clean: Dict[str, str] = {}
        for name, value in pairs:
            name = str(name)
            clean[name] = REDACTED_VALUE if name.lower() in redacted else str(value)

        return cls(url=url, method=method.upper(), headers=clean)

    @classmethod
    def empty(cls) -> "RequestInfo":
        """Request sample for errors recorded outside of a request."""
        return cls()


class ErrorEntry(BaseModel):
    """Aggregated occurrences of one fingerprint since the last drain."""

    fingerprint: str = Field(description="Deduplication key")
    count: int = Field(default=1, ge=1, description="Occurrences since last drain")
    exception: ExceptionInfo = Field(description="Captured exception")
    sample_request: RequestInfo = Field(
        default_factory=RequestInfo,
        description="First request seen for this fingerprint"
    )
    first_seen: datetime = Field(default_factory=utcnow)
    last_seen: datetime = Field(default_factory=utcnow)


class Batch(BaseModel):
    """Entries drained from the store in one flush cycle."""

    entries: List[ErrorEntry] = Field(default_factory=list)
    drained_at: datetime = Field(default_factory=utcnow)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ErrorEntry]:  # type: ignore[override]
        return iter(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def total_count(self) -> int:
        """Total occurrences across all entries."""
        return sum(entry.count for entry in self.entries)

    def get(self, fingerprint: str) -> Optional[ErrorEntry]:
        for entry in self.entries:
            if entry.fingerprint == fingerprint:
                return entry
        return None
