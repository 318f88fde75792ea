"""
Request executor: one authenticated call with classification and retries.

Per attempt:
1. Ask the governor whether the pool has quota (pre-emptive throttling)
2. Send with a per-attempt timeout
3. Feed quota headers to the governor (success or failure)
4. On failure: classify, consult the retry policy, sleep or raise

Every suspend point (throttle wait, network wait, backoff sleep) observes the
caller's CancelToken. Cancellation surfaces as RequestCancelledError and is
never retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import aiohttp
import orjson

from ghaccess.classifier import (
    ErrorKind,
    HttpFailure,
    TransportFailure,
    TransportReason,
    classify,
)
from ghaccess.errors import ApiError, RequestCancelledError, parse_field_errors
from ghaccess.governor import RateLimitGovernor
from ghaccess.links import parse_link_header
from ghaccess.observer import RequestObserver
from ghaccess.retry import RetryAfter, RetryContext, RetryPolicy
from ghaccess.types import ResponseEnvelope

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine, Mapping

    from ghaccess.config import ClientConfig
    from ghaccess.governor import QuotaState
    from ghaccess.types import RequestSpec

logger = logging.getLogger(__name__)


class CancelToken:
    """Caller-owned cancellation signal shared by every suspend point of a call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Fire the signal. Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Check if the signal has fired."""
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()


class _AttemptFailed(Exception):
    """Internal: one attempt failed with a classifiable outcome."""

    def __init__(
        self,
        outcome: TransportFailure | HttpFailure,
        *,
        reset_at: float | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(str(outcome))
        self.outcome = outcome
        self.reset_at = reset_at
        self.cause = cause


def _encode_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class RequestExecutor:
    """
    Async executor for GitHub REST calls.

    Owns (or borrows) one aiohttp session. The governor is injected so every
    executor built for the same credential shares one quota view.
    """

    def __init__(
        self,
        config: ClientConfig,
        governor: RateLimitGovernor | None = None,
        policy: RetryPolicy | None = None,
        observer: RequestObserver | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        time_fn: Callable[[], float] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            config: Client configuration.
            governor: Shared rate-limit governor (a private one is created if None).
            policy: Retry policy (defaults to one built from config.retry).
            observer: Optional progress observer.
            session: Externally managed aiohttp session (not closed by close()).
            time_fn: Clock returning epoch seconds (for deterministic tests).
            sleep_fn: Async sleep (for deterministic tests).
        """
        self._config = config
        self._time_fn = time_fn or time.time
        self._sleep_fn = sleep_fn or asyncio.sleep
        self._governor = governor or RateLimitGovernor(time_fn=self._time_fn)
        self._policy = policy or RetryPolicy(config.retry)
        self._observer = observer or RequestObserver()
        self._session = session
        self._owns_session = session is None

    @property
    def governor(self) -> RateLimitGovernor:
        return self._governor

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def observer(self) -> RequestObserver:
        return self._observer

    def _now(self) -> float:
        return self._time_fn()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this executor created it."""
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def is_same_origin(self, url: str) -> bool:
        """Check if an absolute URL lives under the configured base URL."""
        base = self._config.base_url
        return url == base or url.startswith(base + "/") or url.startswith(base + "?")

    def _build_url(self, spec: RequestSpec) -> str:
        if spec.is_absolute:
            if not self.is_same_origin(spec.path):
                raise ValueError(f"Refusing to request URL outside base_url: {urlsplit(spec.path).netloc}")
            return spec.path
        return f"{self._config.base_url}/{spec.path.lstrip('/')}"

    def _build_params(self, spec: RequestSpec) -> dict[str, str]:
        return {key: _encode_param(value) for key, value in spec.params.items() if value is not None}

    def _build_headers(self, spec: RequestSpec) -> dict[str, str]:
        headers = self._config.default_headers()
        if spec.body is not None:
            headers["Content-Type"] = "application/json"
        headers.update(spec.headers)
        return headers

    async def execute(self, spec: RequestSpec, cancel: CancelToken | None = None) -> ResponseEnvelope:
        """
        Execute a request with throttling, classification and retries.

        Args:
            spec: Request description.
            cancel: Optional cancellation signal.

        Returns:
            ResponseEnvelope of the first successful attempt.

        Raises:
            ApiError: Non-retryable failure, or retry budget exhausted.
            RequestCancelledError: cancel fired before completion.
        """
        context = RetryContext()

        while True:
            await self._throttle(spec, cancel, context)
            attempt = context.attempt + 1
            self._observer.on_attempt(spec, attempt)
            logger.debug(
                "Sending request",
                extra={"method": spec.method, "endpoint": spec.path, "attempt": attempt},
            )

            try:
                envelope = await self._race(self._attempt(spec), cancel, spec, context)
            except _AttemptFailed as failure:
                kind = classify(failure.outcome)
                context.record_failure(kind)
                decision = self._policy.next_action(
                    kind, context, reset_at=failure.reset_at, now=self._now()
                )
                if not isinstance(decision, RetryAfter):
                    error = self._to_error(spec, failure, kind, context)
                    logger.error(
                        "Request failed",
                        extra={
                            "method": spec.method,
                            "endpoint": spec.path,
                            "kind": kind.value,
                            "status": error.status,
                            "attempts": context.attempt,
                            "reason": decision.reason,
                        },
                    )
                    self._observer.on_failure(spec, error)
                    raise error from failure.cause

                logger.log(
                    logging.INFO if decision.rate_limited else logging.WARNING,
                    "Rate limited, waiting for reset" if decision.rate_limited else "Request failed, retrying",
                    extra={
                        "method": spec.method,
                        "endpoint": spec.path,
                        "kind": kind.value,
                        "attempt": context.attempt,
                        "delay_s": round(decision.delay_s, 3),
                    },
                )
                self._observer.on_retry(spec, kind, decision.delay_s, context.attempt)
                await self._sleep(decision.delay_s, cancel, spec, context)
                continue
            except ApiError as error:
                self._observer.on_failure(spec, error)
                raise

            self._observer.on_success(spec, envelope, attempt)
            return envelope

    async def _throttle(self, spec: RequestSpec, cancel: CancelToken | None, context: RetryContext) -> None:
        """Wait once for pool quota if the governor says it is exhausted."""
        if cancel is not None and cancel.cancelled:
            raise RequestCancelledError(path=spec.path, attempts=context.attempt)
        if not self._config.preemptive_throttle:
            return
        wait = await self._governor.reserve(spec.pool)
        if wait is None or wait <= 0:
            return
        # Throttle waits share the per-call rate-limit budget with retry waits
        budget = self._config.retry.max_rate_limit_wait_s - context.rate_limit_waited_s
        if budget <= 0:
            logger.debug(
                "Rate limit wait budget spent, sending anyway",
                extra={"pool": spec.pool, "attempt": context.attempt + 1},
            )
            return
        delay = min(wait, budget)
        context.rate_limit_waited_s += delay
        logger.debug(
            "Pool quota exhausted, waiting for reset",
            extra={"pool": spec.pool, "delay_s": round(delay, 3)},
        )
        self._observer.on_throttle(spec.pool, delay)
        await self._sleep(delay, cancel, spec, context)

    async def _sleep(
        self,
        delay_s: float,
        cancel: CancelToken | None,
        spec: RequestSpec,
        context: RetryContext,
    ) -> None:
        if delay_s <= 0:
            return
        await self._race(self._sleep_fn(delay_s), cancel, spec, context)

    async def _race(
        self,
        coro: Coroutine[Any, Any, Any] | Awaitable[Any],
        cancel: CancelToken | None,
        spec: RequestSpec,
        context: RetryContext,
    ) -> Any:
        """Await coro unless cancel fires first."""
        if cancel is None:
            return await coro
        work = asyncio.ensure_future(coro)
        if cancel.cancelled:
            work.cancel()
            await asyncio.wait({work})
            raise RequestCancelledError(path=spec.path, attempts=context.attempt)

        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            return work.result()

        # Let the in-flight attempt unwind (closes the response) before surfacing
        await asyncio.wait({work})
        if not work.cancelled():
            work.exception()
        logger.info("Request cancelled", extra={"endpoint": spec.path, "attempts": context.attempt})
        raise RequestCancelledError(path=spec.path, attempts=context.attempt)

    async def _attempt(self, spec: RequestSpec) -> ResponseEnvelope:
        """Send once. Raises _AttemptFailed for classifiable failures."""
        url = self._build_url(spec)
        data = orjson.dumps(spec.body) if spec.body is not None else None
        timeout = aiohttp.ClientTimeout(total=spec.timeout_s or self._config.timeout_s)

        try:
            session = await self._get_session()
            async with session.request(
                spec.method,
                url,
                params=None if spec.is_absolute else self._build_params(spec),
                data=data,
                headers=self._build_headers(spec),
                timeout=timeout,
            ) as response:
                status = response.status
                headers = {key.lower(): value for key, value in response.headers.items()}
                raw = await response.read()
                final_url = str(response.url)
        except TimeoutError as e:
            raise _AttemptFailed(
                TransportFailure(TransportReason.TIMEOUT, f"timed out after {timeout.total}s"),
                cause=e,
            ) from e
        except (aiohttp.ServerDisconnectedError, aiohttp.ClientPayloadError) as e:
            raise _AttemptFailed(TransportFailure(TransportReason.ABORTED, str(e)), cause=e) from e
        except (aiohttp.ClientError, OSError) as e:
            raise _AttemptFailed(TransportFailure(TransportReason.CONNECTION, str(e)), cause=e) from e

        quota = await self._governor.observe(spec.pool, headers)

        if status >= 400:
            body = self._decode_lenient(raw, headers)
            raise _AttemptFailed(
                HttpFailure(status=status, headers=headers, body=body),
                reset_at=self._reset_at(headers, quota),
            )

        try:
            body = self._decode(raw, headers)
        except ValueError as e:
            raise ApiError(
                ErrorKind.UNKNOWN,
                f"Malformed response body: {e}",
                method=spec.method,
                path=spec.path,
                status=status,
            ) from e

        return ResponseEnvelope(
            body=body,
            status=status,
            headers=headers,
            url=final_url,
            pagination_links=parse_link_header(headers.get("link")),
            quota=quota,
        )

    @staticmethod
    def _decode(raw: bytes, headers: Mapping[str, str]) -> Any:
        """Decode a body as JSON (or text for non-JSON content types)."""
        if not raw:
            return None
        content_type = headers.get("content-type", "")
        if "json" in content_type or not content_type:
            return orjson.loads(raw)
        return raw.decode("utf-8", errors="replace")

    @classmethod
    def _decode_lenient(cls, raw: bytes, headers: Mapping[str, str]) -> Any:
        try:
            return cls._decode(raw, headers)
        except ValueError:
            return raw.decode("utf-8", errors="replace")

    def _reset_at(self, headers: Mapping[str, str], quota: QuotaState | None) -> float | None:
        """Reset time for a rate-limited response: Retry-After, else exhausted quota."""
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return self._now() + max(0.0, float(retry_after))
            except ValueError:
                pass
        if quota is not None and quota.remaining == 0:
            return quota.reset_at
        return None

    def _to_error(
        self,
        spec: RequestSpec,
        failure: _AttemptFailed,
        kind: ErrorKind,
        context: RetryContext,
    ) -> ApiError:
        outcome = failure.outcome
        if isinstance(outcome, TransportFailure):
            return ApiError(
                kind,
                f"{outcome.reason.value} failure: {outcome.detail}".rstrip(": "),
                method=spec.method,
                path=spec.path,
                attempts=context.attempt,
            )

        body = outcome.body
        message = f"Request failed with status {outcome.status}"
        documentation_url = None
        if isinstance(body, dict):
            message = str(body.get("message") or message)
            documentation_url = body.get("documentation_url")

        return ApiError(
            kind,
            message,
            method=spec.method,
            path=spec.path,
            status=outcome.status,
            body=body,
            field_errors=parse_field_errors(body) if kind == ErrorKind.VALIDATION else None,
            reset_at=failure.reset_at if kind == ErrorKind.RATE_LIMITED else None,
            attempts=context.attempt,
            documentation_url=documentation_url,
        )
