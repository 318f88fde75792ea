"""
Error classification for GitHub REST API outcomes.

Maps a raw outcome (transport failure or HTTP error response) onto the closed
ErrorKind set. Pure functions only: no I/O, no logging, no clock.

Priority order:
1. Connection/DNS failure or abort -> NETWORK_ERROR
2. Per-attempt timeout -> TIMEOUT
3. 401 -> AUTH
4. 403 with X-RateLimit-Remaining == 0 -> RATE_LIMITED
5. 403 otherwise -> AUTH (forbidden / insufficient scope)
6. 404 -> NOT_FOUND
7. 422 -> VALIDATION
8. 429 -> RATE_LIMITED
9. >= 500 -> SERVER_ERROR
10. anything else -> UNKNOWN
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure identities produced by the access layer."""

    AUTH = "auth"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        """Check if retrying could change the outcome."""
        return self in TRANSIENT_KINDS


TRANSIENT_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVER_ERROR,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.TIMEOUT,
    }
)


class TransportReason(str, Enum):
    """Why a request never produced an HTTP response."""

    CONNECTION = "connection"  # refused, reset, DNS failure
    ABORTED = "aborted"  # server disconnected mid-response
    TIMEOUT = "timeout"  # per-attempt timeout elapsed


@dataclass(frozen=True)
class TransportFailure:
    """
    A request that failed below the HTTP layer.

    Attributes:
        reason: Failure category.
        detail: Human-readable detail for error messages.
    """

    reason: TransportReason
    detail: str = ""


@dataclass(frozen=True)
class HttpFailure:
    """
    An HTTP response with status >= 400.

    Attributes:
        status: HTTP status code.
        headers: Response headers (lookups must be case-insensitive).
        body: Decoded response body, if any.
    """

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


Outcome = TransportFailure | HttpFailure


def header_value(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup that works on plain dicts."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def is_quota_exhausted(headers: Mapping[str, str]) -> bool:
    """Check the X-RateLimit-Remaining signal for exhaustion."""
    remaining = header_value(headers, "X-RateLimit-Remaining")
    if remaining is None:
        return False
    try:
        return int(remaining.strip()) == 0
    except ValueError:
        return False


def classify(outcome: Outcome) -> ErrorKind:
    """
    Classify a failed outcome.

    Args:
        outcome: Transport failure or HTTP error response.

    Returns:
        The ErrorKind for this outcome. Same input always yields the same kind.
    """
    if isinstance(outcome, TransportFailure):
        if outcome.reason == TransportReason.TIMEOUT:
            return ErrorKind.TIMEOUT
        return ErrorKind.NETWORK_ERROR

    status = outcome.status
    if status == 401:
        return ErrorKind.AUTH
    if status == 403:
        if is_quota_exhausted(outcome.headers):
            return ErrorKind.RATE_LIMITED
        return ErrorKind.AUTH
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 422:
        return ErrorKind.VALIDATION
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN
