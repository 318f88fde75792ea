"""Tests for client configuration and token resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from ghaccess import __version__
from ghaccess.config import DEFAULT_BASE_URL, ClientConfig, resolve_token
from ghaccess.retry import RetryConfig


class TestResolveToken:
    """Tests for token resolution order."""

    def test_explicit_token_wins(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Explicit token beats file and environment."""
        token_file = tmp_path / "token"
        token_file.write_text("from-file\n")
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")

        assert resolve_token("direct", token_file) == ("direct", "direct")

    def test_file_beats_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Token file contents are stripped and beat the environment."""
        token_file = tmp_path / "token"
        token_file.write_text("  from-file\n")
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")

        assert resolve_token("", token_file) == ("from-file", "file")

    def test_env_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """GITHUB_TOKEN beats GH_TOKEN."""
        monkeypatch.setenv("GH_TOKEN", "gh")
        assert resolve_token() == ("gh", "env:GH_TOKEN")

        monkeypatch.setenv("GITHUB_TOKEN", "github")
        assert resolve_token() == ("github", "env:GITHUB_TOKEN")

    def test_no_token(self) -> None:
        """Anonymous access is allowed."""
        assert resolve_token() == ("", None)

    def test_unreadable_file(self, tmp_path: Path) -> None:
        """A missing token file is a configuration error."""
        with pytest.raises(ValueError, match="Failed to read token"):
            resolve_token("", tmp_path / "missing")


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_defaults(self) -> None:
        """Default configuration targets the public API anonymously."""
        config = ClientConfig()

        assert config.base_url == DEFAULT_BASE_URL
        assert config.token == ""
        assert config.token_source is None
        assert config.default_per_page == 30
        assert isinstance(config.retry, RetryConfig)
        assert "Authorization" not in config.default_headers()

    def test_enterprise_base_url_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """GITHUB_API_URL selects a different server; trailing slash is stripped."""
        monkeypatch.setenv("GITHUB_API_URL", "https://ghe.example.com/api/v3/")
        assert ClientConfig().base_url == "https://ghe.example.com/api/v3"

    def test_default_headers(self) -> None:
        """Bearer auth, API version and user agent are always sent."""
        headers = ClientConfig(token="ghp_abc").default_headers()

        assert headers == {
            "Accept": "application/vnd.github+json",
            "User-Agent": f"ghaccess/{__version__}",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": "Bearer ghp_abc",
        }

    def test_require_token(self) -> None:
        """require_token fails fast without a credential."""
        with pytest.raises(ValueError, match="required"):
            ClientConfig(require_token=True)

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"base_url": "ftp://x"}, "base_url"),
            ({"timeout_s": 0}, "timeout_s"),
            ({"default_per_page": 101}, "default_per_page"),
            ({"max_pages": 0}, "max_pages"),
        ],
    )
    def test_validation(self, kwargs: dict, match: str) -> None:
        """Invalid values are rejected."""
        with pytest.raises(ValueError, match=match):
            ClientConfig(**kwargs)

    def test_clamp_per_page(self) -> None:
        """Page sizes are clamped into [1, max_per_page]."""
        config = ClientConfig()
        assert config.clamp_per_page(None) == 30
        assert config.clamp_per_page(0) == 1
        assert config.clamp_per_page(250) == 100

    def test_repr_hides_token(self) -> None:
        """Token value never appears in repr."""
        assert "ghp_secret" not in repr(ClientConfig(token="ghp_secret"))
