"""Unit tests for the command line interface."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from click.testing import CliRunner

from browser_bridge import __version__
from browser_bridge.cdp import RemoteCommandClient, Target
from browser_bridge.cli import main, truncate
from browser_bridge.errors import TransportUnavailable

_AsyncClient = httpx.AsyncClient


def mock_http(handler):
    """Route every httpx.AsyncClient the CLI creates through ``handler``."""
    return patch(
        "browser_bridge.cli.httpx.AsyncClient",
        lambda **kwargs: _AsyncClient(transport=httpx.MockTransport(handler), **kwargs),
    )


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestGroup:
    def test_version(self, runner) -> None:
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner) -> None:
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("host", "bridge", "mcp", "health", "tabs"):
            assert command in result.output


class TestHealth:
    """Tests for `browser-bridge health`."""

    def test_healthy(self, runner) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/health"
            return httpx.Response(
                200, json={"status": "ok", "sessions": 2, "remote_state": "connected"}
            )

        with mock_http(handler):
            result = runner.invoke(main, ["health", "--url", "http://relay.test:19222/"])

        assert result.exit_code == 0
        assert "2 session(s)" in result.output
        assert "browser link connected" in result.output

    def test_unreachable(self, runner) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        with mock_http(handler):
            result = runner.invoke(main, ["health", "--url", "http://relay.test:19222"])

        assert result.exit_code == 1
        assert "Cannot connect to relay" in result.output

    def test_bad_status(self, runner) -> None:
        with mock_http(lambda request: httpx.Response(503)):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "503" in result.output


class TestTabs:
    """Tests for `browser-bridge tabs`."""

    PAGES = [
        Target(id="T1", title="Example Domain", url="https://example.com"),
        Target(id="T2", title="A" * 60, url="https://example.org/" + "x" * 60),
    ]

    def test_json_output(self, runner) -> None:
        with patch.object(RemoteCommandClient, "list_pages", AsyncMock(return_value=self.PAGES)):
            result = runner.invoke(main, ["tabs", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [tab["id"] for tab in data] == ["T1", "T2"]
        assert data[0] == {"id": "T1", "title": "Example Domain", "url": "https://example.com"}

    def test_table_output_truncates(self, runner) -> None:
        with patch.object(RemoteCommandClient, "list_pages", AsyncMock(return_value=self.PAGES)):
            result = runner.invoke(main, ["tabs"])

        assert result.exit_code == 0
        assert "Example Domain" in result.output
        assert "A" * 27 + "..." in result.output
        assert "Total: 2 tab(s)" in result.output

    def test_no_tabs(self, runner) -> None:
        with patch.object(RemoteCommandClient, "list_pages", AsyncMock(return_value=[])):
            result = runner.invoke(main, ["tabs"])

        assert result.exit_code == 0
        assert "No tabs found." in result.output

    def test_browser_unreachable(self, runner) -> None:
        error = TransportUnavailable("Failed to connect to Chrome at http://localhost:9222")
        with patch.object(RemoteCommandClient, "list_pages", AsyncMock(side_effect=error)):
            result = runner.invoke(main, ["tabs"])

        assert result.exit_code == 1
        assert "Failed to connect to Chrome" in result.output


class TestTruncate:
    def test_short_text_unchanged(self) -> None:
        assert truncate("short", 10) == "short"

    def test_long_text(self) -> None:
        assert truncate("abcdefghij", 8) == "abcde..."

    def test_empty(self) -> None:
        assert truncate(None) == ""
