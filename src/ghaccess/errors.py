"""
Terminal error types surfaced by the access layer.

Every failure that reaches a caller is either an ApiError (tagged with one
ErrorKind) or a RequestCancelledError. Lower-level exceptions from aiohttp or
the JSON decoder are chained, never re-raised directly.
"""

from __future__ import annotations

import math
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from ghaccess.classifier import ErrorKind

# Process exit codes for CLI collaborators
EXIT_GENERIC = 1
EXIT_RATE_LIMITED = 29  # 429-class
EXIT_AUTH = 41  # 401-class
EXIT_NOT_FOUND = 44  # 404-class
EXIT_CANCELLED = 130

_EXIT_CODES: dict[ErrorKind, int] = {
    ErrorKind.AUTH: EXIT_AUTH,
    ErrorKind.NOT_FOUND: EXIT_NOT_FOUND,
    ErrorKind.RATE_LIMITED: EXIT_RATE_LIMITED,
}


class FieldError(BaseModel):
    """One entry of a 422 response's ``errors`` list."""

    model_config = ConfigDict(frozen=True, extra="allow")

    resource: str | None = None
    field: str | None = None
    code: str | None = None
    message: str | None = None

    def describe(self) -> str:
        """Render as ``field: message`` (or the best available subset)."""
        text = self.message or self.code or "invalid"
        if self.field:
            return f"{self.field}: {text}"
        return text


def parse_field_errors(body: Any) -> list[FieldError]:
    """
    Extract structured field errors from a validation response body.

    Accepts dict entries and bare strings; anything else is skipped.

    Args:
        body: Decoded response body.

    Returns:
        List of FieldError (empty if the body carries none).
    """
    if not isinstance(body, dict):
        return []
    raw_errors = body.get("errors")
    if not isinstance(raw_errors, list):
        return []

    errors: list[FieldError] = []
    for entry in raw_errors:
        if isinstance(entry, str):
            errors.append(FieldError(message=entry))
        elif isinstance(entry, dict):
            try:
                errors.append(FieldError.model_validate(entry))
            except ValidationError:
                errors.append(FieldError(message=str(entry)))
    return errors


class ApiError(Exception):
    """Raised when a request fails terminally."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        method: str = "GET",
        path: str = "",
        status: int | None = None,
        body: Any = None,
        field_errors: list[FieldError] | None = None,
        reset_at: float | None = None,
        attempts: int = 1,
        documentation_url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.method = method
        self.path = path
        self.status = status
        self.body = body
        self.field_errors = field_errors or []
        self.reset_at = reset_at
        self.attempts = attempts
        self.documentation_url = documentation_url

    @property
    def is_transient(self) -> bool:
        """Check if the error kind is one the retry policy would retry."""
        return self.kind.is_transient

    def retry_after_s(self, now: float | None = None) -> float | None:
        """Seconds until the rate limit resets, if known."""
        if self.reset_at is None:
            return None
        current = time.time() if now is None else now
        return max(0.0, self.reset_at - current)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(kind={self.kind.value!r}, status={self.status!r}, "
            f"path={self.path!r})"
        )


class RequestCancelledError(Exception):
    """Raised when the caller's cancel token fires.

    Not an ApiError: cancellation carries no ErrorKind and is never retried.
    """

    def __init__(self, message: str = "Request cancelled", *, path: str = "", attempts: int = 0) -> None:
        super().__init__(message)
        self.path = path
        self.attempts = attempts


def format_wait(seconds: float) -> str:
    """Format a wait as seconds, minutes, or hours and minutes."""
    total = max(0, math.ceil(seconds))
    if total < 60:
        return f"{total} second{'s' if total != 1 else ''}"

    minutes = total // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"

    hours = minutes // 60
    rest = minutes % 60
    return f"{hours} hour{'s' if hours != 1 else ''} {rest} minute{'s' if rest != 1 else ''}"


def format_error(error: BaseException, now: float | None = None) -> str:
    """
    Render a terminal error for CLI output.

    Args:
        error: Exception raised by the access layer.
        now: Current epoch seconds (for rate limit waits).

    Returns:
        One or more lines of user-facing text.
    """
    if isinstance(error, RequestCancelledError):
        return str(error)

    if not isinstance(error, ApiError):
        return str(error) or "An unknown error occurred"

    if error.kind == ErrorKind.VALIDATION and error.field_errors:
        lines = "\n  - ".join(fe.describe() for fe in error.field_errors)
        return f"Validation failed:\n  - {lines}"

    if error.kind == ErrorKind.RATE_LIMITED:
        wait = error.retry_after_s(now)
        if wait:
            return f"{error}. Rate limit resets in {format_wait(wait)}."
        return str(error)

    if error.status is not None:
        return f"{error} (HTTP {error.status})"
    return str(error)


def exit_code_for(error: BaseException) -> int:
    """Map a terminal error onto a process exit code."""
    if isinstance(error, RequestCancelledError):
        return EXIT_CANCELLED
    if isinstance(error, ApiError):
        return _EXIT_CODES.get(error.kind, EXIT_GENERIC)
    return EXIT_GENERIC
