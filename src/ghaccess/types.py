"""
Core value types for the access layer.

RequestSpec, ResponseEnvelope and PageCursor are immutable: retries and page
advances build new instances instead of mutating existing ones.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ghaccess.governor import QuotaState
    from ghaccess.links import PageLink

WRITE_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class PaginationMode(str, Enum):
    """How the paginator derives the next cursor."""

    AUTO = "auto"  # LINK if the response has a Link header, else PAGE
    LINK = "link"  # only a rel="next" relation continues the sequence
    PAGE = "page"  # a full page continues the sequence


@dataclass(frozen=True)
class RequestSpec:
    """
    Immutable description of one logical API call.

    Comparable but not hashable: params and body may hold lists and dicts.

    Attributes:
        path: Path relative to the base URL, or an absolute URL under it.
        method: HTTP method.
        params: Query parameters (None values are dropped on send).
        body: JSON body for write methods.
        pool: Rate-limit pool the call is charged to.
        timeout_s: Per-attempt timeout override.
        headers: Extra request headers.
    """

    path: str
    method: str = "GET"
    params: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    pool: str = "core"
    timeout_s: float | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        if not self.path:
            raise ValueError("path must not be empty")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")

    @property
    def is_absolute(self) -> bool:
        """Check if path is a full URL rather than a base-relative path."""
        return self.path.startswith(("http://", "https://"))

    def with_params(self, **updates: Any) -> RequestSpec:
        """Return a copy with query parameters merged in."""
        merged = dict(self.params)
        merged.update(updates)
        return replace(self, params=merged)

    def with_url(self, url: str) -> RequestSpec:
        """Return a copy targeting url with no separate query parameters."""
        return replace(self, path=url, params={})


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    Result of a successful call.

    Attributes:
        body: Decoded body (JSON value, text, or None when empty).
        status: HTTP status code.
        headers: Response headers with lower-cased names.
        url: Final request URL.
        pagination_links: Parsed Link relations.
        quota: Quota observed for the call's pool, if the response carried it.
    """

    body: Any
    status: int
    headers: Mapping[str, str]
    url: str = ""
    pagination_links: Mapping[str, PageLink] = field(default_factory=dict)
    quota: QuotaState | None = None

    @property
    def has_link_header(self) -> bool:
        """Check if the server sent a Link header at all."""
        return "link" in self.headers


@dataclass(frozen=True)
class PageCursor:
    """
    Opaque position within a paginated collection.

    Attributes:
        per_page: Page size requested.
        page: 1-based page number for page-number bookkeeping.
        next_url: Raw "next" URL when following Link relations.
    """

    per_page: int
    page: int = 1
    next_url: str | None = None

    def __post_init__(self) -> None:
        if self.per_page < 1:
            raise ValueError(f"per_page must be >= 1, got {self.per_page}")
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence or logging."""
        return {"per_page": self.per_page, "page": self.page, "next_url": self.next_url}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PageCursor:
        """Restore a cursor persisted with to_dict()."""
        return cls(
            per_page=int(data["per_page"]),
            page=int(data.get("page", 1)),
            next_url=data.get("next_url"),
        )
