"""
Client configuration.

Token resolution priority: explicit token > token_file > GITHUB_TOKEN > GH_TOKEN.
No configuration files are read here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from ghaccess import __version__
from ghaccess.retry import RetryConfig

DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_API_VERSION = "2022-11-28"
DEFAULT_ACCEPT = "application/vnd.github+json"

TOKEN_ENV_VARS: tuple[str, ...] = ("GITHUB_TOKEN", "GH_TOKEN")

# Env vars whose values must never be logged
REDACTED_ENV_VARS = frozenset({*TOKEN_ENV_VARS})


def resolve_token(token: str = "", token_file: str | Path | None = None) -> tuple[str, str | None]:
    """
    Resolve the bearer credential.

    Args:
        token: Explicit token (wins if non-empty).
        token_file: File whose stripped contents are the token.

    Returns:
        (token, source) where source is "direct", "file", "env:<NAME>" or None.

    Raises:
        ValueError: If token_file is given but cannot be read.
    """
    if token:
        return token, "direct"

    if token_file is not None:
        try:
            content = Path(token_file).read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ValueError(f"Failed to read token from file {token_file}: {e}") from e
        if content:
            return content, "file"

    for name in TOKEN_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value, f"env:{name}"

    return "", None


@dataclass
class ClientConfig:
    """Configuration for one credential/base-URL pair."""

    base_url: str = ""  # From GITHUB_API_URL env var, else api.github.com
    token: str = ""  # Resolved via resolve_token() when empty
    token_file: str | None = None
    timeout_s: float = 30.0  # Per-attempt
    user_agent: str = f"ghaccess/{__version__}"
    api_version: str = DEFAULT_API_VERSION
    accept: str = DEFAULT_ACCEPT
    default_per_page: int = 30
    max_per_page: int = 100  # Server-defined maximum
    max_pages: int | None = None
    retry: RetryConfig = field(default_factory=RetryConfig)
    preemptive_throttle: bool = True
    require_token: bool = False
    token_source: str | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.base_url:
            self.base_url = os.environ.get("GITHUB_API_URL", DEFAULT_BASE_URL)
        self.base_url = self.base_url.rstrip("/")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {self.base_url!r}")

        self.token, self.token_source = resolve_token(self.token, self.token_file)
        if self.require_token and not self.token:
            raise ValueError(
                "GITHUB_TOKEN (or GH_TOKEN, token, token_file) required when require_token is set"
            )

        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")
        if self.max_per_page < 1:
            raise ValueError(f"max_per_page must be >= 1, got {self.max_per_page}")
        if not 1 <= self.default_per_page <= self.max_per_page:
            raise ValueError(
                f"default_per_page must be in [1, {self.max_per_page}], got {self.default_per_page}"
            )
        if self.max_pages is not None and self.max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {self.max_pages}")

    def clamp_per_page(self, per_page: int | None) -> int:
        """Clamp a requested page size to [1, max_per_page]."""
        if per_page is None:
            return self.default_per_page
        return min(self.max_per_page, max(1, per_page))

    def default_headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        headers = {
            "Accept": self.accept,
            "User-Agent": self.user_agent,
            "X-GitHub-Api-Version": self.api_version,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def __repr__(self) -> str:
        # Never expose the token
        return (
            f"ClientConfig(base_url={self.base_url!r}, token_source={self.token_source!r}, "
            f"timeout_s={self.timeout_s!r})"
        )
