"""ghaccess: rate-limit-aware, retrying, paginating GitHub REST access layer."""

__version__ = "0.1.0"

from ghaccess.classifier import ErrorKind, HttpFailure, TransportFailure, TransportReason, classify
from ghaccess.client import AccessClient
from ghaccess.config import ClientConfig, resolve_token
from ghaccess.errors import (
    ApiError,
    FieldError,
    RequestCancelledError,
    exit_code_for,
    format_error,
    format_wait,
)
from ghaccess.executor import CancelToken, RequestExecutor
from ghaccess.governor import QuotaState, RateLimitGovernor
from ghaccess.observer import RequestObserver
from ghaccess.paginator import CursorPaginator, Page, PageSequence, SequenceState
from ghaccess.retry import RetryAfter, RetryConfig, RetryContext, RetryPolicy, Stop
from ghaccess.types import PageCursor, PaginationMode, RequestSpec, ResponseEnvelope

__all__ = [
    "AccessClient",
    "ApiError",
    "CancelToken",
    "ClientConfig",
    "CursorPaginator",
    "ErrorKind",
    "FieldError",
    "HttpFailure",
    "Page",
    "PageCursor",
    "PageSequence",
    "PaginationMode",
    "QuotaState",
    "RateLimitGovernor",
    "RequestCancelledError",
    "RequestExecutor",
    "RequestObserver",
    "RequestSpec",
    "ResponseEnvelope",
    "RetryAfter",
    "RetryConfig",
    "RetryContext",
    "RetryPolicy",
    "SequenceState",
    "Stop",
    "TransportFailure",
    "TransportReason",
    "__version__",
    "classify",
    "exit_code_for",
    "format_error",
    "format_wait",
    "resolve_token",
]
