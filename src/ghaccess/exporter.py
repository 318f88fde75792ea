"""
Prometheus metrics for the access layer.

Labels are low-cardinality only: pool name and error kind. Paths, URLs,
tokens and page numbers never become labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

from ghaccess.observer import RequestObserver

if TYPE_CHECKING:
    from ghaccess.classifier import ErrorKind
    from ghaccess.errors import ApiError
    from ghaccess.governor import RateLimitGovernor
    from ghaccess.types import RequestSpec, ResponseEnvelope


# Labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset(
    {
        "path",
        "endpoint",
        "url",
        "query",
        "page",
        "token",
        "user",
        "repo",
    }
)


class PrometheusObserver(RequestObserver):
    """
    RequestObserver that records request activity as Prometheus metrics.

    Metric families (prefix ``ghaccess_``):
    - requests_attempted_total{pool}
    - requests_succeeded_total{pool}
    - requests_failed_total{pool, kind}
    - retries_total{pool, kind}
    - retry_wait_seconds_total{pool}
    - throttle_wait_seconds_total{pool}
    - pages_fetched_total{pool}
    - quota_remaining{pool}, quota_limit{pool}

    Usage:
        registry = CollectorRegistry()
        observer = PrometheusObserver(registry=registry)
        client = AccessClient(config, observer=observer)
        ...
        observer.update_quota(client.governor)
        # generate_latest(registry) -> bytes for a /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize the observer.

        Args:
            registry: Prometheus CollectorRegistry. If None, a private registry is created.
        """
        self._registry = registry or CollectorRegistry()

        self._attempted = Counter(
            "ghaccess_requests_attempted",
            "Total request attempts sent (including retries)",
            ["pool"],
            registry=self._registry,
        )
        self._succeeded = Counter(
            "ghaccess_requests_succeeded",
            "Total logical requests that succeeded",
            ["pool"],
            registry=self._registry,
        )
        self._failed = Counter(
            "ghaccess_requests_failed",
            "Total logical requests that failed terminally",
            ["pool", "kind"],
            registry=self._registry,
        )
        self._retries = Counter(
            "ghaccess_retries",
            "Total retries scheduled",
            ["pool", "kind"],
            registry=self._registry,
        )
        self._retry_wait = Counter(
            "ghaccess_retry_wait_seconds",
            "Total seconds slept before retries (backoff and rate-limit waits)",
            ["pool"],
            registry=self._registry,
        )
        self._throttle_wait = Counter(
            "ghaccess_throttle_wait_seconds",
            "Total seconds slept by pre-emptive quota throttling",
            ["pool"],
            registry=self._registry,
        )
        self._pages = Counter(
            "ghaccess_pages_fetched",
            "Total pages fetched by the paginator",
            ["pool"],
            registry=self._registry,
        )
        self._quota_remaining = Gauge(
            "ghaccess_quota_remaining",
            "Last known remaining calls in the pool's window",
            ["pool"],
            registry=self._registry,
        )
        self._quota_limit = Gauge(
            "ghaccess_quota_limit",
            "Last known call limit of the pool's window",
            ["pool"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    def on_attempt(self, spec: RequestSpec, attempt: int) -> None:
        self._attempted.labels(pool=spec.pool).inc()

    def on_throttle(self, pool: str, delay_s: float) -> None:
        self._throttle_wait.labels(pool=pool).inc(delay_s)

    def on_retry(self, spec: RequestSpec, kind: ErrorKind, delay_s: float, attempt: int) -> None:
        self._retries.labels(pool=spec.pool, kind=kind.value).inc()
        self._retry_wait.labels(pool=spec.pool).inc(delay_s)

    def on_success(self, spec: RequestSpec, envelope: ResponseEnvelope, attempt: int) -> None:
        self._succeeded.labels(pool=spec.pool).inc()
        if envelope.quota is not None:
            self._quota_remaining.labels(pool=spec.pool).set(envelope.quota.remaining)
            self._quota_limit.labels(pool=spec.pool).set(envelope.quota.limit)

    def on_failure(self, spec: RequestSpec, error: ApiError) -> None:
        self._failed.labels(pool=spec.pool, kind=error.kind.value).inc()

    def on_page(self, spec: RequestSpec, page: int, item_count: int) -> None:
        self._pages.labels(pool=spec.pool).inc()

    def update_quota(self, governor: RateLimitGovernor) -> None:
        """Refresh quota gauges for every pool the governor knows."""
        for pool in governor.pools():
            state = governor.quota(pool)
            if state is None:
                continue
            self._quota_remaining.labels(pool=pool).set(state.remaining)
            self._quota_limit.labels(pool=pool).set(state.limit)


# Note: Counters are exported with _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {
        "ghaccess_requests_attempted_total",
        "ghaccess_requests_succeeded_total",
        "ghaccess_requests_failed_total",
        "ghaccess_retries_total",
        "ghaccess_retry_wait_seconds_total",
        "ghaccess_throttle_wait_seconds_total",
        "ghaccess_pages_fetched_total",
        "ghaccess_quota_remaining",
        "ghaccess_quota_limit",
    }
)
