"""Shared fakes: a controllable clock and a scripted aiohttp session."""

from __future__ import annotations

import asyncio
from typing import Any

import orjson
import pytest

BASE_URL = "https://api.github.com"
T0 = 1_700_000_000.0


class FakeClock:
    """Epoch clock that only advances when something sleeps."""

    def __init__(self, start: float = T0) -> None:
        self.now_s = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now_s

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now_s += delay


class FakeResponse:
    """Stands in for aiohttp.ClientResponse inside ``async with``."""

    def __init__(
        self,
        status: int = 200,
        body: Any = None,
        headers: dict[str, str] | None = None,
        *,
        raw: bytes | None = None,
        delay_s: float = 0.0,
        url: str = BASE_URL,
    ) -> None:
        self.status = status
        self.headers = headers or {}
        self.url = url
        if raw is not None:
            self._raw = raw
        else:
            self._raw = orjson.dumps(body) if body is not None else b""
        self._delay_s = delay_s

    async def read(self) -> bytes:
        return self._raw

    async def __aenter__(self) -> FakeResponse:
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None


class FakeSession:
    """Returns scripted responses (or raises scripted exceptions) in order."""

    def __init__(self, *responses: FakeResponse | BaseException) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self._responses:
            raise AssertionError(f"unexpected request: {method} {url}")
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


def quota_headers(remaining: int, reset: float, limit: int = 5000, **extra: str) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(int(reset)),
    }
    headers.update(extra)
    return headers


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture(autouse=True)
def _no_token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's real credentials out of tests."""
    for name in ("GITHUB_TOKEN", "GH_TOKEN", "GITHUB_API_URL"):
        monkeypatch.delenv(name, raising=False)
