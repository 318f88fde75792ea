"""Tests for cursor pagination."""

from __future__ import annotations

import pytest
from conftest import BASE_URL, FakeClock, FakeResponse, FakeSession

from ghaccess.classifier import ErrorKind
from ghaccess.client import AccessClient
from ghaccess.config import ClientConfig
from ghaccess.errors import ApiError
from ghaccess.paginator import SequenceState, extract_items
from ghaccess.types import PageCursor, PaginationMode, RequestSpec

ISSUES = RequestSpec("/repos/octo/hello/issues", params={"state": "open"})


def make_client(
    session: FakeSession,
    clock: FakeClock,
    mode: PaginationMode = PaginationMode.AUTO,
    **config_kwargs,
) -> AccessClient:
    return AccessClient(
        ClientConfig(base_url=BASE_URL, **config_kwargs),
        session=session,  # type: ignore[arg-type]
        time_fn=clock.time,
        sleep_fn=clock.sleep,
        mode=mode,
    )


def link(page: int, rel: str = "next", base: str = BASE_URL) -> str:
    return f'<{base}/repos/octo/hello/issues?state=open&per_page=2&page={page}>; rel="{rel}"'


class TestPageNumberPagination:
    """Tests for PAGE/AUTO mode without Link headers."""

    @pytest.mark.asyncio
    async def test_short_last_page_terminates(self, clock: FakeClock) -> None:
        """Pages of 100, 100, 37 yield 237 items in exactly 3 requests."""
        session = FakeSession(
            FakeResponse(200, list(range(100))),
            FakeResponse(200, list(range(100, 200))),
            FakeResponse(200, list(range(200, 237))),
        )
        client = make_client(session, clock)

        items = await client.collect_all(ISSUES, per_page=100)

        assert items == list(range(237))
        assert len(session.calls) == 3
        assert [call["params"]["page"] for call in session.calls] == ["1", "2", "3"]
        assert all(call["params"]["per_page"] == "100" for call in session.calls)
        assert all(call["params"]["state"] == "open" for call in session.calls)

    @pytest.mark.asyncio
    async def test_empty_collection(self, clock: FakeClock) -> None:
        """An empty first page ends the sequence."""
        session = FakeSession(FakeResponse(200, []))
        client = make_client(session, clock)

        assert await client.collect_all(ISSUES) == []
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_per_page_clamped(self, clock: FakeClock) -> None:
        """Requested page size is clamped to the server maximum."""
        session = FakeSession(FakeResponse(200, [1]))
        client = make_client(session, clock)

        await client.collect_all(ISSUES, per_page=500)

        assert session.calls[0]["params"]["per_page"] == "100"

    @pytest.mark.asyncio
    async def test_max_pages_bound(self, clock: FakeClock) -> None:
        """max_pages stops an endless run of full pages."""
        session = FakeSession(*(FakeResponse(200, [1, 2]) for _ in range(5)))
        client = make_client(session, clock, max_pages=2)

        items = await client.collect_all(ISSUES, per_page=2)

        assert items == [1, 2, 1, 2]
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_max_pages_counts_from_resumed_cursor(self, clock: FakeClock) -> None:
        """max_pages bounds pages fetched, not the page number reached."""
        session = FakeSession(*(FakeResponse(200, [1, 2]) for _ in range(5)))
        client = make_client(session, clock, mode=PaginationMode.PAGE, max_pages=2)

        sequence = client.sequence(ISSUES, start=PageCursor(per_page=2, page=3))
        items = [item async for item in sequence]

        assert items == [1, 2, 1, 2]
        assert sequence.pages_fetched == 2
        assert sequence.state == SequenceState.DONE
        assert [call["params"]["page"] for call in session.calls] == ["3", "4"]
        assert sequence.cursor == PageCursor(per_page=2, page=5)

        resumed = client.sequence(ISSUES, start=sequence.cursor)
        assert [item async for item in resumed] == [1, 2, 1, 2]
        assert [call["params"]["page"] for call in session.calls[2:]] == ["5", "6"]

    @pytest.mark.parametrize("params", [{"page": "two"}, {"per_page": "lots"}, {"page": True}])
    def test_non_integer_page_params_rejected(self, clock: FakeClock, params: dict) -> None:
        """Non-integer page or per_page in the request is a clear ValueError."""
        client = make_client(FakeSession(), clock)
        spec = RequestSpec("/repos/octo/hello/issues", params=params)

        with pytest.raises(ValueError, match="must be an integer"):
            client.paginator.first_cursor(spec)

    def test_string_page_params_accepted(self, clock: FakeClock) -> None:
        """Numeric strings in the request are honoured."""
        client = make_client(FakeSession(), clock)
        spec = RequestSpec("/repos/octo/hello/issues", params={"page": "4", "per_page": "50"})

        assert client.paginator.first_cursor(spec) == PageCursor(per_page=50, page=4)


class TestLinkPagination:
    """Tests for LINK mode and AUTO with Link headers."""

    @pytest.mark.asyncio
    async def test_follows_next_links(self, clock: FakeClock) -> None:
        """The next URL is requested verbatim with no extra params."""
        session = FakeSession(
            FakeResponse(200, [1, 2], {"Link": f"{link(2)}, {link(3, 'last')}"}),
            FakeResponse(200, [3, 4], {"Link": f"{link(3)}, {link(1, 'first')}"}),
            FakeResponse(200, [5], {"Link": link(2, "prev")}),
        )
        client = make_client(session, clock, mode=PaginationMode.LINK)

        items = await client.collect_all(ISSUES, per_page=2)

        assert items == [1, 2, 3, 4, 5]
        second = session.calls[1]
        assert second["url"] == f"{BASE_URL}/repos/octo/hello/issues?state=open&per_page=2&page=2"
        assert second["params"] is None

    @pytest.mark.asyncio
    async def test_full_page_without_next_is_final(self, clock: FakeClock) -> None:
        """A full page with no next relation ends the sequence."""
        session = FakeSession(FakeResponse(200, [1, 2], {"Link": link(1, "first")}))
        client = make_client(session, clock)

        items = await client.collect_all(ISSUES, per_page=2)

        assert items == [1, 2]
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_foreign_next_link_uses_page_number(self, clock: FakeClock) -> None:
        """A next URL outside base_url is not followed; the page number is used instead."""
        session = FakeSession(
            FakeResponse(200, [1, 2], {"Link": link(2, base="https://mirror.example.com")}),
            FakeResponse(200, [3]),
        )
        client = make_client(session, clock)

        items = await client.collect_all(ISSUES, per_page=2)

        assert items == [1, 2, 3]
        assert session.calls[1]["url"] == f"{BASE_URL}/repos/octo/hello/issues"
        assert session.calls[1]["params"]["page"] == "2"


class TestSequence:
    """Tests for the lazy sequence and resumption."""

    @pytest.mark.asyncio
    async def test_max_items_short_circuits(self, clock: FakeClock) -> None:
        """No page is fetched once max_items is reached."""
        session = FakeSession(*(FakeResponse(200, [1, 2]) for _ in range(3)))
        client = make_client(session, clock)

        items = await client.collect_all(ISSUES, max_items=3, per_page=2)

        assert items == [1, 2, 1]
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_zero_max_items(self, clock: FakeClock) -> None:
        """max_items=0 sends nothing."""
        session = FakeSession()
        client = make_client(session, clock)

        assert await client.collect_all(ISSUES, max_items=0) == []
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_resume_from_cursor(self, clock: FakeClock) -> None:
        """A persisted cursor resumes at the next page."""
        session = FakeSession(FakeResponse(200, ["a", "b"]), FakeResponse(200, ["c"]))
        client = make_client(session, clock)

        sequence = client.sequence(ISSUES, per_page=2)
        assert sequence.state == SequenceState.START
        assert [await sequence.__anext__(), await sequence.__anext__()] == ["a", "b"]
        assert sequence.state == SequenceState.HAS_NEXT
        assert sequence.cursor == PageCursor(per_page=2, page=2)

        saved = sequence.cursor.to_dict()
        resumed = client.sequence(ISSUES, start=PageCursor.from_dict(saved))
        rest = [item async for item in resumed]

        assert rest == ["c"]
        assert resumed.state == SequenceState.DONE
        assert resumed.pages_fetched == 1
        assert session.calls[1]["params"]["page"] == "2"

    @pytest.mark.asyncio
    async def test_fetch_page(self, clock: FakeClock) -> None:
        """Single-page access exposes the next cursor."""
        session = FakeSession(FakeResponse(200, [1, 2]))
        client = make_client(session, clock)

        page = await client.fetch_page(ISSUES, PageCursor(per_page=2))

        assert page.items == [1, 2]
        assert page.cursor.page == 1
        assert page.next_cursor == PageCursor(per_page=2, page=2)
        assert page.envelope.status == 200


class TestBodyShapes:
    """Tests for collection extraction."""

    @pytest.mark.asyncio
    async def test_search_items_body(self, clock: FakeClock) -> None:
        """Search responses wrap the collection in ``items``."""
        body = {"total_count": 2, "incomplete_results": False, "items": [{"id": 1}, {"id": 2}]}
        session = FakeSession(FakeResponse(200, body))
        client = make_client(session, clock)

        items = await client.collect_all(RequestSpec("/search/issues", params={"q": "bug"}, pool="search"))

        assert items == [{"id": 1}, {"id": 2}]

    def test_non_collection_body(self) -> None:
        """Objects without an items list are not collections."""
        with pytest.raises(ApiError) as exc_info:
            extract_items(ISSUES, {"message": "hello"})
        assert exc_info.value.kind == ErrorKind.UNKNOWN
