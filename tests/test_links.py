"""Tests for Link header parsing."""

from __future__ import annotations

from ghaccess.links import PageLink, extract_page, parse_link_header

GITHUB_LINK = (
    '<https://api.github.com/repositories/1300192/issues?page=2>; rel="prev", '
    '<https://api.github.com/repositories/1300192/issues?page=4>; rel="next", '
    '<https://api.github.com/repositories/1300192/issues?page=515>; rel="last", '
    '<https://api.github.com/repositories/1300192/issues?page=1>; rel="first"'
)


class TestParseLinkHeader:
    """Tests for parse_link_header."""

    def test_all_relations(self) -> None:
        """Every relation is parsed with its page number."""
        links = parse_link_header(GITHUB_LINK)

        assert set(links) == {"prev", "next", "last", "first"}
        assert links["next"] == PageLink(
            url="https://api.github.com/repositories/1300192/issues?page=4", page=4
        )
        assert links["last"].page == 515

    def test_empty_and_none(self) -> None:
        """Absent header yields no relations."""
        assert parse_link_header(None) == {}
        assert parse_link_header("") == {}

    def test_malformed_parts_are_skipped(self) -> None:
        """Garbage parts do not break the valid ones."""
        links = parse_link_header('garbage, <https://x.test/a?page=2>; rel="next"')
        assert list(links) == ["next"]

    def test_unknown_relation_ignored(self) -> None:
        """Only next/prev/first/last are kept."""
        assert parse_link_header('<https://x.test/a>; rel="alternate"') == {}

    def test_url_without_page(self) -> None:
        """Cursor-style links have no page number."""
        links = parse_link_header('<https://api.github.com/events?after=abc>; rel="next"')
        assert links["next"].page is None
        assert links["next"].url == "https://api.github.com/events?after=abc"


class TestExtractPage:
    """Tests for extract_page."""

    def test_page_among_params(self) -> None:
        """Page is found regardless of parameter order."""
        assert extract_page("https://x.test/a?per_page=100&page=7") == 7

    def test_non_integer_page(self) -> None:
        """Non-integer page is treated as absent."""
        assert extract_page("https://x.test/a?page=last") is None
