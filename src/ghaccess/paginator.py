"""
Cursor pagination over the request executor.

Per logical sequence: START -> FETCHING -> (HAS_NEXT -> FETCHING | DONE).
FETCHING delegates to RequestExecutor.execute, which runs its own retry loop.

Termination rules (all modes):
- a page with fewer items than per_page is final
- a sequence stops once it has fetched max_pages pages (its cursor is kept)
- LINK mode: a page without a rel="next" relation is final
- PAGE mode: only a full page continues (page number + 1)
- AUTO mode: LINK if the response carries a Link header, else PAGE
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ghaccess.classifier import ErrorKind
from ghaccess.errors import ApiError
from ghaccess.types import PageCursor, PaginationMode

if TYPE_CHECKING:
    from ghaccess.executor import CancelToken, RequestExecutor
    from ghaccess.types import RequestSpec, ResponseEnvelope

logger = logging.getLogger(__name__)


class SequenceState(str, Enum):
    """State of a PageSequence."""

    START = "START"
    FETCHING = "FETCHING"
    HAS_NEXT = "HAS_NEXT"
    DONE = "DONE"


@dataclass(frozen=True)
class Page:
    """
    One fetched page.

    Attributes:
        items: Items on this page.
        cursor: Cursor that was fetched.
        next_cursor: Cursor for the following page, or None if final.
        envelope: Full response (headers, quota, links).
    """

    items: list[Any]
    cursor: PageCursor
    next_cursor: PageCursor | None
    envelope: ResponseEnvelope


def extract_items(spec: RequestSpec, body: Any) -> list[Any]:
    """Return the collection from a list body or an ``items`` object (search)."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and isinstance(body.get("items"), list):
        return list(body["items"])
    raise ApiError(
        ErrorKind.UNKNOWN,
        "Response is not a collection",
        method=spec.method,
        path=spec.path,
        body=body,
    )


def _int_param(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


class CursorPaginator:
    """
    Exposes one paginated collection as single pages, a lazy sequence, or a list.

    Stateless between calls: all position lives in PageCursor values.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        *,
        mode: PaginationMode = PaginationMode.AUTO,
        max_pages: int | None = None,
    ) -> None:
        """
        Initialize the paginator.

        Args:
            executor: Executor used for every page.
            mode: How next cursors are derived.
            max_pages: Safety bound on pages per sequence (None = config default).
        """
        self._executor = executor
        self._mode = mode
        self._max_pages = max_pages if max_pages is not None else executor.config.max_pages

    @property
    def mode(self) -> PaginationMode:
        return self._mode

    @property
    def max_pages(self) -> int | None:
        return self._max_pages

    def first_cursor(self, spec: RequestSpec, per_page: int | None = None) -> PageCursor:
        """
        Build the cursor for page 1, honouring page/per_page already in spec.

        Raises:
            ValueError: If page or per_page is not an integer.
        """
        config = self._executor.config
        requested = per_page if per_page is not None else spec.params.get("per_page")
        start_page = spec.params.get("page")
        return PageCursor(
            per_page=config.clamp_per_page(
                _int_param("per_page", requested) if requested is not None else None
            ),
            page=max(1, _int_param("page", start_page)) if start_page is not None else 1,
        )

    def _page_spec(self, spec: RequestSpec, cursor: PageCursor) -> RequestSpec:
        if cursor.next_url and self._executor.is_same_origin(cursor.next_url):
            return spec.with_url(cursor.next_url)
        if cursor.next_url:
            logger.warning(
                "Ignoring next URL outside base_url, using page number",
                extra={"endpoint": spec.path, "page": cursor.page},
            )
        return spec.with_params(page=cursor.page, per_page=cursor.per_page)

    async def fetch_page(
        self,
        spec: RequestSpec,
        cursor: PageCursor | None = None,
        cancel: CancelToken | None = None,
    ) -> Page:
        """
        Fetch one page.

        Args:
            spec: Collection request (GET).
            cursor: Position to fetch (None = first page).
            cancel: Optional cancellation signal.

        Returns:
            Page with items and the next cursor (None when final).
        """
        current = cursor or self.first_cursor(spec)
        envelope = await self._executor.execute(self._page_spec(spec, current), cancel)
        items = extract_items(spec, envelope.body)
        next_cursor = self._next_cursor(current, items, envelope)
        self._executor.observer.on_page(spec, current.page, len(items))
        logger.debug(
            "Fetched page",
            extra={
                "endpoint": spec.path,
                "page": current.page,
                "count": len(items),
                "has_next": next_cursor is not None,
            },
        )
        return Page(items=items, cursor=current, next_cursor=next_cursor, envelope=envelope)

    def _next_cursor(
        self,
        current: PageCursor,
        items: list[Any],
        envelope: ResponseEnvelope,
    ) -> PageCursor | None:
        if len(items) < current.per_page:
            return None

        mode = self._mode
        if mode == PaginationMode.AUTO:
            mode = PaginationMode.LINK if envelope.has_link_header else PaginationMode.PAGE

        if mode == PaginationMode.PAGE:
            return PageCursor(per_page=current.per_page, page=current.page + 1)

        link = envelope.pagination_links.get("next")
        if link is None:
            return None
        return PageCursor(
            per_page=current.per_page,
            page=link.page if link.page is not None else current.page + 1,
            next_url=link.url,
        )

    def sequence(
        self,
        spec: RequestSpec,
        *,
        start: PageCursor | None = None,
        per_page: int | None = None,
        cancel: CancelToken | None = None,
    ) -> PageSequence:
        """
        Lazy sequence over every item.

        Each call starts a fresh sequence (page 1 unless start is given).
        """
        cursor = start or self.first_cursor(spec, per_page)
        return PageSequence(self, spec, cursor, cancel)

    async def collect_all(
        self,
        spec: RequestSpec,
        max_items: int | None = None,
        *,
        per_page: int | None = None,
        cancel: CancelToken | None = None,
    ) -> list[Any]:
        """
        Drain a sequence into a list.

        Args:
            spec: Collection request.
            max_items: Stop after this many items (None = unbounded).
            per_page: Page size override.
            cancel: Optional cancellation signal.

        Returns:
            Up to max_items items; no page is fetched once the limit is reached.
        """
        if max_items is not None and max_items <= 0:
            return []
        items: list[Any] = []
        async for item in self.sequence(spec, per_page=per_page, cancel=cancel):
            items.append(item)
            if max_items is not None and len(items) >= max_items:
                break
        return items


class PageSequence:
    """
    Explicit async iterator over the items of a paginated collection.

    Not a generator: the position is the public ``cursor`` attribute, so a
    caller can persist it and later resume with ``sequence(spec, start=cursor)``.
    max_pages bounds the pages fetched by this sequence, counted from its
    start cursor. Abandoning the iterator needs no cleanup.
    """

    def __init__(
        self,
        paginator: CursorPaginator,
        spec: RequestSpec,
        cursor: PageCursor,
        cancel: CancelToken | None = None,
    ) -> None:
        self._paginator = paginator
        self._spec = spec
        self._cancel = cancel
        self._buffer: list[Any] = []
        self._index = 0
        self.cursor: PageCursor | None = cursor
        self.state = SequenceState.START
        self.pages_fetched = 0
        self.items_yielded = 0

    def __aiter__(self) -> PageSequence:
        return self

    async def __anext__(self) -> Any:
        while self._index >= len(self._buffer):
            if self.cursor is None or self.state == SequenceState.DONE:
                self.state = SequenceState.DONE
                raise StopAsyncIteration
            await self._fetch()

        item = self._buffer[self._index]
        self._index += 1
        self.items_yielded += 1
        return item

    async def _fetch(self) -> None:
        assert self.cursor is not None  # Type narrowing
        self.state = SequenceState.FETCHING
        page = await self._paginator.fetch_page(self._spec, self.cursor, self._cancel)
        self.pages_fetched += 1
        self._buffer = page.items
        self._index = 0
        self.cursor = page.next_cursor
        if self.cursor is None:
            self.state = SequenceState.DONE
            return

        max_pages = self._paginator.max_pages
        if max_pages is not None and self.pages_fetched >= max_pages:
            # Cursor still points at the next page so the caller can resume
            logger.warning(
                "Stopping sequence at max_pages",
                extra={"endpoint": self._spec.path, "max_pages": max_pages, "next_page": self.cursor.page},
            )
            self.state = SequenceState.DONE
            return
        self.state = SequenceState.HAS_NEXT

    def __repr__(self) -> str:
        return (
            f"PageSequence(path={self._spec.path!r}, state={self.state.value}, "
            f"pages_fetched={self.pages_fetched})"
        )
