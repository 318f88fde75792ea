"""
Link header parsing for cursor pagination.

Format: ``<url>; rel="next", <url>; rel="last"`` with rel in
{next, prev, first, last}.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

_LINK_PATTERN = re.compile(r'<([^>]+)>\s*;\s*rel="([^"]+)"')

RELATIONS: frozenset[str] = frozenset({"next", "prev", "first", "last"})


@dataclass(frozen=True)
class PageLink:
    """
    One pagination relation.

    Attributes:
        url: Target URL exactly as sent by the server.
        page: Value of the ``page`` query parameter, if present.
    """

    url: str
    page: int | None = None


def extract_page(url: str) -> int | None:
    """Return the integer ``page`` query parameter of a URL, if any."""
    values = parse_qs(urlsplit(url).query).get("page")
    if not values:
        return None
    try:
        return int(values[0])
    except ValueError:
        return None


def parse_link_header(value: str | None) -> dict[str, PageLink]:
    """
    Parse a Link header into relation -> PageLink.

    Unknown relations and malformed parts are ignored.

    Args:
        value: Raw Link header value (None or empty yields {}).

    Returns:
        Mapping of relation name to PageLink.
    """
    if not value:
        return {}

    links: dict[str, PageLink] = {}
    for part in value.split(","):
        match = _LINK_PATTERN.search(part)
        if match is None:
            continue
        url, rel = match.group(1).strip(), match.group(2).strip()
        if rel not in RELATIONS:
            continue
        links[rel] = PageLink(url=url, page=extract_page(url))
    return links
