"""Stable error identity derived from message and stack trace."""

import hashlib

from .models import ExceptionInfo


# Resolve the hash primitive at import time so a broken hashing backend
# fails the process before the scheduler starts.
_HASH_FACTORY = hashlib.sha256
_HASH_FACTORY(b"")

FINGERPRINT_LENGTH = _HASH_FACTORY().digest_size * 2


def fingerprint(exception: ExceptionInfo) -> str:
    """Compute the deduplication key for an exception.

    Two exceptions with the same message and stack trace always produce the
    same key. Request data and the exception type name are not part of it.

    Args:
        exception: Captured exception

    Returns:
        Hex-encoded SHA-256 digest
    """
    message = exception.message.encode("utf-8")
    stack_trace = (exception.stack_trace or "").encode("utf-8")

    # Length prefix keeps ("ab", "c") and ("a", "bc") apart
    digest = _HASH_FACTORY()
    digest.update(str(len(message)).encode("ascii") + b":")
    digest.update(message)
    digest.update(stack_trace)
    return digest.hexdigest()


def fingerprint_exception(exc: BaseException) -> str:
    """Compute the deduplication key for a live exception."""
    return fingerprint(ExceptionInfo.from_exception(exc))
