"""Unit tests for error fingerprinting."""

import pytest

from faultline.fingerprint import FINGERPRINT_LENGTH, fingerprint, fingerprint_exception
from faultline.models import ExceptionInfo


class TestFingerprint:
    """Test fingerprint stability and identity rules."""

    def test_same_message_and_trace_same_key(self):
        """Identical message and stack trace always hash to the same key."""
        a = ExceptionInfo(message="timeout", stack_trace="at db.query\nat handler")
        b = ExceptionInfo(message="timeout", stack_trace="at db.query\nat handler")

        assert fingerprint(a) == fingerprint(b)

    def test_key_is_hex_sha256(self):
        key = fingerprint(ExceptionInfo(message="x"))

        assert len(key) == FINGERPRINT_LENGTH == 64
        int(key, 16)

    def test_type_name_not_part_of_key(self):
        a = ExceptionInfo(message="bad", stack_trace="trace", type_name="ValueError")
        b = ExceptionInfo(message="bad", stack_trace="trace", type_name="TypeError")

        assert fingerprint(a) == fingerprint(b)

    def test_different_trace_different_key(self):
        a = ExceptionInfo(message="bad", stack_trace="at a")
        b = ExceptionInfo(message="bad", stack_trace="at b")

        assert fingerprint(a) != fingerprint(b)

    def test_boundary_shift_does_not_collide(self):
        """Moving characters between message and trace changes the key."""
        a = ExceptionInfo(message="ab", stack_trace="c")
        b = ExceptionInfo(message="a", stack_trace="bc")

        assert fingerprint(a) != fingerprint(b)

    def test_empty_stack_trace_uses_message_only(self):
        a = ExceptionInfo(message="no trace")
        b = ExceptionInfo(message="no trace", stack_trace="")

        assert fingerprint(a) == fingerprint(b)
        assert fingerprint(a) != fingerprint(ExceptionInfo(message="other"))

    def test_unicode_message(self):
        key = fingerprint(ExceptionInfo(message="échec ✗", stack_trace="line 1"))

        assert len(key) == FINGERPRINT_LENGTH

    def test_live_exception_same_site_same_key(self):
        """Exceptions raised from the same line share a key."""
        def fail():
            raise ValueError("invalid quantity")

        keys = []
        for _ in range(2):
            try:
                fail()
            except ValueError as e:
                keys.append(fingerprint_exception(e))

        assert keys[0] == keys[1]

    def test_unraised_exception(self):
        key = fingerprint_exception(RuntimeError("never raised"))

        assert key == fingerprint(ExceptionInfo(message="never raised", type_name="RuntimeError"))
