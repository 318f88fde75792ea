"""
AccessClient: the public surface of the access layer.

One client per credential/base-URL pair. It owns the aiohttp session, the
rate-limit governor shared by every call it makes, the retry policy, and the
paginator.

Usage:
    async with AccessClient(ClientConfig()) as client:
        repos = await client.collect_all(RequestSpec("/user/repos"), max_items=200)
"""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Any

from ghaccess.classifier import ErrorKind
from ghaccess.config import ClientConfig
from ghaccess.errors import ApiError
from ghaccess.executor import RequestExecutor
from ghaccess.governor import RateLimitGovernor
from ghaccess.paginator import CursorPaginator
from ghaccess.retry import RetryPolicy
from ghaccess.types import PaginationMode, RequestSpec

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import aiohttp

    from ghaccess.executor import CancelToken
    from ghaccess.governor import QuotaState
    from ghaccess.observer import RequestObserver
    from ghaccess.paginator import Page, PageSequence
    from ghaccess.types import PageCursor, ResponseEnvelope

logger = logging.getLogger(__name__)

RATE_LIMIT_PATH = "/rate_limit"


class AccessClient:
    """
    Authenticated, rate-limit-aware GitHub REST client.

    Every executor and paginator built by this client charges the same
    RateLimitGovernor, so concurrent callers share one quota view.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        observer: RequestObserver | None = None,
        governor: RateLimitGovernor | None = None,
        session: aiohttp.ClientSession | None = None,
        time_fn: Callable[[], float] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        rng: random.Random | None = None,
        mode: PaginationMode = PaginationMode.AUTO,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Client configuration (defaults resolve the token from env).
            observer: Optional progress observer (e.g. PrometheusObserver).
            governor: Governor to share with other clients on the same credential.
            session: Externally managed aiohttp session.
            time_fn: Clock returning epoch seconds (for deterministic tests).
            sleep_fn: Async sleep (for deterministic tests).
            rng: Random source for backoff jitter.
            mode: Pagination mode.
        """
        self._config = config or ClientConfig()
        time_fn = time_fn or time.time
        self._governor = governor or RateLimitGovernor(time_fn=time_fn)
        self._executor = RequestExecutor(
            self._config,
            self._governor,
            RetryPolicy(self._config.retry, rng=rng),
            observer,
            session=session,
            time_fn=time_fn,
            sleep_fn=sleep_fn,
        )
        self._paginator = CursorPaginator(self._executor, mode=mode)

        logger.debug(
            "AccessClient created",
            extra={
                "base_url": self._config.base_url,
                "token_source": self._config.token_source,
                "mode": mode.value,
            },
        )

    async def __aenter__(self) -> AccessClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def governor(self) -> RateLimitGovernor:
        return self._governor

    @property
    def paginator(self) -> CursorPaginator:
        return self._paginator

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        await self._executor.close()

    async def execute(self, spec: RequestSpec, cancel: CancelToken | None = None) -> ResponseEnvelope:
        """Execute one call with throttling and retries. See RequestExecutor.execute."""
        return await self._executor.execute(spec, cancel)

    async def fetch_page(
        self,
        spec: RequestSpec,
        cursor: PageCursor | None = None,
        cancel: CancelToken | None = None,
    ) -> Page:
        return await self._paginator.fetch_page(spec, cursor, cancel)

    def sequence(
        self,
        spec: RequestSpec,
        *,
        start: PageCursor | None = None,
        per_page: int | None = None,
        cancel: CancelToken | None = None,
    ) -> PageSequence:
        return self._paginator.sequence(spec, start=start, per_page=per_page, cancel=cancel)

    async def collect_all(
        self,
        spec: RequestSpec,
        max_items: int | None = None,
        *,
        per_page: int | None = None,
        cancel: CancelToken | None = None,
    ) -> list[Any]:
        return await self._paginator.collect_all(
            spec, max_items, per_page=per_page, cancel=cancel
        )

    def quota(self, pool: str = "core") -> QuotaState | None:
        """Last known quota for pool (read-only)."""
        return self._governor.quota(pool)

    async def get_rate_limit(self, cancel: CancelToken | None = None) -> dict[str, dict[str, int]]:
        """
        Fetch the quota snapshot for every pool and seed the governor with it.

        Calls to /rate_limit do not count against the core quota.

        Returns:
            Mapping of pool name to {"limit", "remaining", "reset", "used"}.

        Raises:
            ApiError: If the call fails or the body has no "resources" object.
        """
        envelope = await self._executor.execute(RequestSpec(RATE_LIMIT_PATH), cancel)
        body = envelope.body
        resources = body.get("resources") if isinstance(body, dict) else None
        if not isinstance(resources, dict):
            raise ApiError(
                ErrorKind.UNKNOWN,
                "Rate limit response has no resources",
                method="GET",
                path=RATE_LIMIT_PATH,
                status=envelope.status,
                body=body,
            )

        snapshot: dict[str, dict[str, int]] = {}
        for pool, entry in resources.items():
            if not isinstance(entry, dict):
                continue
            try:
                limit = int(entry["limit"])
                remaining = int(entry["remaining"])
                reset = int(entry["reset"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed rate limit entry", extra={"pool": pool})
                continue
            await self._governor.seed(pool, limit, remaining, reset)
            snapshot[pool] = {
                "limit": limit,
                "remaining": remaining,
                "reset": reset,
                "used": int(entry.get("used", limit - remaining)),
            }

        logger.info("Rate limits refreshed", extra={"pools": sorted(snapshot)})
        return snapshot

    def __repr__(self) -> str:
        return f"AccessClient(config={self._config!r}, mode={self._paginator.mode.value})"
