"""
Rate-limit governor for GitHub-style quota pools.

GitHub exposes independent quota pools ("core", "search", "graphql", ...)
with separate refill windows. All state here is keyed by pool name so a
search-heavy caller never stalls core calls.

The governor never raises; it only records quota and advises waits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from ghaccess.classifier import header_value

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_POOL = "core"


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class QuotaHeaders:
    """
    Quota fields parsed from one response.

    Attributes:
        limit: X-RateLimit-Limit.
        remaining: X-RateLimit-Remaining.
        reset: X-RateLimit-Reset (epoch seconds).
        used: X-RateLimit-Used, if sent.
        resource: X-RateLimit-Resource (pool name), if sent.
    """

    limit: int
    remaining: int
    reset: int
    used: int | None = None
    resource: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> QuotaHeaders | None:
        """Parse X-RateLimit-* headers, returning None if any required field is absent."""
        limit = _parse_int(header_value(headers, "X-RateLimit-Limit"))
        remaining = _parse_int(header_value(headers, "X-RateLimit-Remaining"))
        reset = _parse_int(header_value(headers, "X-RateLimit-Reset"))
        if limit is None or remaining is None or reset is None:
            return None
        resource = header_value(headers, "X-RateLimit-Resource")
        return cls(
            limit=limit,
            remaining=remaining,
            reset=reset,
            used=_parse_int(header_value(headers, "X-RateLimit-Used")),
            resource=resource.strip() if resource else None,
        )


@dataclass(frozen=True)
class QuotaState:
    """
    Last known quota for one pool.

    Attributes:
        limit: Calls allowed per window.
        remaining: Calls left in the current window.
        reset_at: Epoch seconds when the window resets.
        last_observed_at: Epoch seconds of the last authoritative update.
    """

    limit: int
    remaining: int
    reset_at: float
    last_observed_at: float

    def wait_s(self, now: float) -> float | None:
        """Seconds to wait before the pool has capacity, or None."""
        if self.remaining <= 0 and now < self.reset_at:
            return self.reset_at - now
        return None

    def at(self, now: float) -> QuotaState:
        """View as of now: once reset_at has passed, the window is full again."""
        if now >= self.reset_at and self.remaining < self.limit:
            return replace(self, remaining=self.limit)
        return self


class RateLimitGovernor:
    """
    Per-pool quota tracker.

    One instance per credential/base-URL pair, shared by every executor and
    paginator using that credential. Access to each pool's record is
    serialized by a per-pool asyncio.Lock held only for the O(1) read or
    update; no lock is held across a network call or a sleep.
    """

    def __init__(self, time_fn: Callable[[], float] | None = None) -> None:
        """
        Initialize the governor.

        Args:
            time_fn: Optional clock returning epoch seconds (for deterministic tests).
        """
        self._time_fn = time_fn or time.time
        self._states: dict[str, QuotaState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _now(self) -> float:
        return self._time_fn()

    def _lock(self, pool: str) -> asyncio.Lock:
        lock = self._locks.get(pool)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[pool] = lock
        return lock

    async def observe(self, pool: str, headers: Mapping[str, str]) -> QuotaState | None:
        """
        Record quota from a response (success or failure).

        The server's values override any local prediction. Responses without
        a complete quota header set leave the prior state untouched.

        Args:
            pool: Pool the request was issued against.
            headers: Response headers.

        Returns:
            The updated QuotaState, or None if the headers carried no quota.
        """
        quota = QuotaHeaders.from_headers(headers)
        if quota is None:
            return None
        target = quota.resource or pool
        state = QuotaState(
            limit=quota.limit,
            remaining=quota.remaining,
            reset_at=float(quota.reset),
            last_observed_at=self._now(),
        )
        async with self._lock(target):
            self._states[target] = state
        if quota.remaining == 0:
            logger.info(
                "Quota exhausted",
                extra={"pool": target, "reset_at": quota.reset, "limit": quota.limit},
            )
        return state

    async def must_wait(self, pool: str) -> float | None:
        """
        Advise how long to wait before issuing a request against pool.

        Returns:
            Seconds to wait if the pool is exhausted and not yet reset, else None.
        """
        async with self._lock(pool):
            state = self._states.get(pool)
        if state is None:
            return None
        return state.wait_s(self._now())

    async def reserve(self, pool: str) -> float | None:
        """
        Check for capacity and, if available, claim one call locally.

        Concurrent callers on the same pool are throttled jointly: the local
        decrement makes the last remaining call visible to everyone until the
        next response overrides it. This is the only write besides observe()
        and seed(); it is a prediction, and the server's numbers always win.
        No decrement happens once the window has reset.

        Returns:
            Seconds to wait if no capacity, else None (one call claimed).
        """
        async with self._lock(pool):
            state = self._states.get(pool)
            if state is None:
                return None
            now = self._now()
            wait = state.wait_s(now)
            if wait is not None:
                return wait
            if state.remaining > 0 and now < state.reset_at:
                self._states[pool] = replace(state, remaining=state.remaining - 1)
            return None

    def quota(self, pool: str) -> QuotaState | None:
        """Read-only view of the last known quota for pool (window rolled over after reset)."""
        state = self._states.get(pool)
        if state is None:
            return None
        return state.at(self._now())

    async def seed(self, pool: str, limit: int, remaining: int, reset: int) -> QuotaState:
        """Set quota from an out-of-band snapshot (e.g. GET /rate_limit)."""
        state = QuotaState(
            limit=limit,
            remaining=remaining,
            reset_at=float(reset),
            last_observed_at=self._now(),
        )
        async with self._lock(pool):
            self._states[pool] = state
        return state

    def pools(self) -> list[str]:
        """Pools with known quota."""
        return sorted(self._states)

    def get_status(self) -> dict[str, dict[str, float | int]]:
        """Get current quota per pool for observability."""
        now = self._now()
        status: dict[str, dict[str, float | int]] = {}
        for pool, state in sorted(self._states.items()):
            current = state.at(now)
            status[pool] = {
                "limit": current.limit,
                "remaining": current.remaining,
                "reset_in_s": round(max(0.0, current.reset_at - now), 3),
            }
        return status

    def reset(self) -> None:
        """Forget all quota state."""
        self._states.clear()
        self._locks.clear()
