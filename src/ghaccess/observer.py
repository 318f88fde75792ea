"""
Progress observer hooks.

Observers see what the executor and paginator do; they never steer it.
Retry, throttling and cancellation behave identically with or without one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ghaccess.classifier import ErrorKind
    from ghaccess.errors import ApiError
    from ghaccess.types import RequestSpec, ResponseEnvelope


class RequestObserver:
    """Base observer with no-op hooks. Override what you need."""

    def on_attempt(self, spec: RequestSpec, attempt: int) -> None:
        """Called before each send (attempt is 1-based)."""

    def on_throttle(self, pool: str, delay_s: float) -> None:
        """Called before a pre-emptive wait for pool quota."""

    def on_retry(self, spec: RequestSpec, kind: ErrorKind, delay_s: float, attempt: int) -> None:
        """Called before sleeping ahead of a retry."""

    def on_success(self, spec: RequestSpec, envelope: ResponseEnvelope, attempt: int) -> None:
        """Called once a request succeeds."""

    def on_failure(self, spec: RequestSpec, error: ApiError) -> None:
        """Called once a request fails terminally."""

    def on_page(self, spec: RequestSpec, page: int, item_count: int) -> None:
        """Called after the paginator receives a page."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
