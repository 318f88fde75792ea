"""
Retry policy for classified request failures.

Decision table:
- NETWORK_ERROR, TIMEOUT, SERVER_ERROR: retry up to max_retries with
  exponential backoff + jitter: base * 2^(n-1) + uniform[0, base)
- RATE_LIMITED with a reset time: retry without an attempt cap, waiting
  exactly until reset (clamped to max_rate_limit_wait_s; total rate-limit
  waiting per call is also bounded by that clamp)
- RATE_LIMITED without a reset time: same backoff as SERVER_ERROR
- AUTH, NOT_FOUND, VALIDATION, UNKNOWN: never retried

Seeded RNG injection keeps jitter deterministic in tests.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field

from ghaccess.classifier import ErrorKind

_BACKOFF_KINDS: frozenset[ErrorKind] = frozenset(
    {ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT, ErrorKind.SERVER_ERROR}
)


@dataclass
class RetryConfig:
    """Configuration for retries and rate-limit waits."""

    max_retries: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 60.0
    max_rate_limit_wait_s: float = 3600.0  # 1 hour clamp
    min_rate_limit_wait_s: float = 1.0  # floor when reset is already due

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay_s < 0:
            raise ValueError(f"base_delay_s must be >= 0, got {self.base_delay_s}")
        if self.max_delay_s < self.base_delay_s:
            raise ValueError(
                f"max_delay_s ({self.max_delay_s}) must be >= base_delay_s ({self.base_delay_s})"
            )
        if self.max_rate_limit_wait_s <= 0:
            raise ValueError(
                f"max_rate_limit_wait_s must be > 0, got {self.max_rate_limit_wait_s}"
            )


@dataclass
class RetryContext:
    """Mutable retry bookkeeping for one logical request."""

    attempt: int = 0  # failures recorded so far
    backoff_attempts: int = 0  # failures that used exponential backoff
    started_at: float = field(default_factory=time.monotonic)
    rate_limit_waited_s: float = 0.0
    last_kind: ErrorKind | None = None

    def record_failure(self, kind: ErrorKind) -> None:
        """Record a failed attempt."""
        self.attempt += 1
        self.last_kind = kind

    def elapsed_s(self, now: float | None = None) -> float:
        """Monotonic seconds since the logical request started."""
        current = time.monotonic() if now is None else now
        return current - self.started_at


@dataclass(frozen=True)
class Stop:
    """Give up and surface the error."""

    reason: str


@dataclass(frozen=True)
class RetryAfter:
    """Retry after delay_s seconds."""

    delay_s: float
    rate_limited: bool = False


RetryDecision = Stop | RetryAfter


def compute_backoff_delay(
    config: RetryConfig,
    attempt: int,
    *,
    rng: random.Random | None = None,
) -> float:
    """
    Compute the delay before the attempt-th retry.

    Args:
        config: Retry configuration.
        attempt: 1-based retry number.
        rng: Optional seeded Random instance for deterministic jitter.

    Returns:
        Delay in seconds within [base * 2^(n-1), base * 2^(n-1) + base),
        capped at max_delay_s.
    """
    if attempt <= 0:
        return 0.0
    base = config.base_delay_s
    source = rng if rng is not None else random
    delay = base * (2 ** (attempt - 1)) + source.random() * base
    return min(delay, config.max_delay_s)


class RetryPolicy:
    """Decides whether and when to retry a failed attempt."""

    def __init__(self, config: RetryConfig | None = None, rng: random.Random | None = None) -> None:
        self.config = config or RetryConfig()
        self._rng = rng

    def next_action(
        self,
        kind: ErrorKind,
        context: RetryContext,
        *,
        reset_at: float | None = None,
        now: float | None = None,
    ) -> RetryDecision:
        """
        Decide the next step after a failure.

        The failure must already be recorded in context.

        Args:
            kind: Classified error of the latest attempt.
            context: Retry bookkeeping for this logical request.
            reset_at: Quota reset (epoch seconds) for RATE_LIMITED, if known.
            now: Current epoch seconds.

        Returns:
            Stop or RetryAfter.
        """
        if kind == ErrorKind.RATE_LIMITED and reset_at is not None:
            return self._rate_limit_wait(context, reset_at, now)

        if kind in _BACKOFF_KINDS or kind == ErrorKind.RATE_LIMITED:
            if context.backoff_attempts >= self.config.max_retries:
                return Stop(f"retry budget exhausted after {context.attempt} attempts")
            context.backoff_attempts += 1
            delay = compute_backoff_delay(self.config, context.backoff_attempts, rng=self._rng)
            return RetryAfter(delay)

        return Stop(f"{kind.value} is not retryable")

    def _rate_limit_wait(
        self, context: RetryContext, reset_at: float, now: float | None
    ) -> RetryDecision:
        cap = self.config.max_rate_limit_wait_s
        budget = cap - context.rate_limit_waited_s
        if budget <= 0:
            return Stop(f"rate limit wait exceeded {cap:.0f}s")

        current = time.time() if now is None else now
        wait = max(reset_at - current, self.config.min_rate_limit_wait_s)
        wait = min(wait, budget)
        context.rate_limit_waited_s += wait
        return RetryAfter(wait, rate_limited=True)
