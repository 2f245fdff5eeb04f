"""Unit tests for pipeline value types."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from faultline.models import (
    REDACTED_VALUE,
    Batch,
    ErrorEntry,
    ExceptionInfo,
    RequestInfo,
)


class TestExceptionInfo:
    """Test ExceptionInfo capture."""

    def test_from_raised_exception(self):
        try:
            raise KeyError("missing")
        except KeyError as e:
            info = ExceptionInfo.from_exception(e)

        assert info.type_name == "KeyError"
        assert info.message == "'missing'"
        assert "Traceback (most recent call last)" in info.stack_trace
        assert "test_from_raised_exception" in info.stack_trace

    def test_from_unraised_exception(self):
        info = ExceptionInfo.from_exception(RuntimeError("fresh"))

        assert info.message == "fresh"
        assert info.stack_trace == ""
        assert info.type_name == "RuntimeError"

    def test_is_frozen(self):
        info = ExceptionInfo(message="x")

        with pytest.raises(ValidationError):
            info.message = "y"


class TestRequestInfo:
    """Test request sample construction."""

    def test_build_redacts_sensitive_headers(self):
        request = RequestInfo.build(
            url="/api/orders",
            method="get",
            headers={
                "Authorization": "Bearer abc",
                "Cookie": "session=1",
                "X-Api-Key": "key",
                "Accept": "application/json",
            },
        )

        assert request.method == "GET"
        assert request.headers["Authorization"] == REDACTED_VALUE
        assert request.headers["Cookie"] == REDACTED_VALUE
        assert request.headers["X-Api-Key"] == REDACTED_VALUE
        assert request.headers["Accept"] == "application/json"

    def test_build_preserves_header_order(self):
        request = RequestInfo.build("/", "GET", [("B", "2"), ("A", "1"), ("C", "3")])

        assert list(request.headers) == ["B", "A", "C"]

    def test_build_custom_redaction(self):
        request = RequestInfo.build("/", "GET", {"X-Tenant": "acme", "Authorization": "t"}, redact=["x-tenant"])

        assert request.headers["X-Tenant"] == REDACTED_VALUE
        assert request.headers["Authorization"] == "t"

    def test_empty(self):
        request = RequestInfo.empty()

        assert request.url == ""
        assert request.method == ""
        assert request.headers == {}


class TestBatch:
    """Test Batch helpers."""

    def test_empty_batch(self):
        batch = Batch()

        assert batch.is_empty
        assert len(batch) == 0
        assert batch.total_count == 0

    def test_totals_and_lookup(self, make_entry):
        a = make_entry(message="A", count=3)
        b = make_entry(message="B", count=1)
        batch = Batch(entries=[a, b])

        assert len(batch) == 2
        assert batch.total_count == 4
        assert batch.get(a.fingerprint) is a
        assert batch.get("0" * 64) is None
        assert [entry.exception.message for entry in batch] == ["A", "B"]

    def test_entry_count_must_be_positive(self):
        with pytest.raises(ValidationError):
            ErrorEntry(
                fingerprint="f" * 64,
                count=0,
                exception=ExceptionInfo(message="x"),
                first_seen=datetime.now(timezone.utc),
                last_seen=datetime.now(timezone.utc),
            )
