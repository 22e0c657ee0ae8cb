"""Pytest configuration and shared fixtures.

Fakes for the two remote boundaries the relay touches:
- FakeConnection: an in-memory FramedConnection driven by a queue
- FakeCdp: a Chrome DevTools endpoint (HTTP discovery via httpx.MockTransport
  plus control connections built from FakeConnection)
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import tempfile
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import unquote

import httpx
import pytest

from browser_bridge.cdp import RemoteCommandClient
from browser_bridge.config import CdpConfig
from browser_bridge.transport import FramedConnection

_EOF = object()

Responder = Callable[[dict[str, Any]], dict[str, Any] | None]


def page_target(
    target_id: str, url: str = "about:blank", title: str = "", type: str = "page"
) -> dict[str, Any]:
    """A /json/list entry as Chrome reports it."""
    return {
        "id": target_id,
        "type": type,
        "title": title,
        "url": url,
        "webSocketDebuggerUrl": f"ws://localhost:9222/devtools/page/{target_id}",
    }


def ok_responder(message: dict[str, Any]) -> dict[str, Any]:
    """Answer every CDP command with an empty result."""
    return {"id": message["id"], "result": {}}


class FakeConnection(FramedConnection):
    """In-memory connection. ``feed()`` plays the peer, ``sent`` records our side."""

    def __init__(self, responder: Responder | None = None, label: str = "fake", **kwargs: Any):
        super().__init__(label=label, **kwargs)
        self.responder = responder
        self.sent: list[Any] = []
        self.close_calls: list[tuple[int, str]] = []
        self.fail_sends = False
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    def feed(self, message: Any) -> None:
        self._incoming.put_nowait(message)

    def hangup(self) -> None:
        """The peer goes away."""
        self._incoming.put_nowait(_EOF)

    async def _send_frame(self, message: Any) -> None:
        if self.fail_sends:
            raise ConnectionResetError("peer reset")
        json.dumps(message)  # Must be JSON-serializable like a real transport
        self.sent.append(message)
        if self.responder is not None:
            reply = self.responder(message)
            if reply is not None:
                self._incoming.put_nowait(reply)

    async def _receive_items(self):
        while True:
            item = await self._incoming.get()
            if item is _EOF:
                return
            yield item

    async def _do_close(self, code: int, reason: str) -> None:
        self.close_calls.append((code, reason))
        self._incoming.put_nowait(_EOF)


class FakeCdp:
    """Fake Chrome DevTools endpoint."""

    def __init__(self, targets: list[dict[str, Any]], responder: Responder | None = None):
        self.targets = list(targets)
        self.responder: Responder = responder or ok_responder
        self.connections: list[FakeConnection] = []
        self.connected_urls: list[str] = []
        self.requests: list[httpx.Request] = []
        self.unreachable = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        if path == "/json/list":
            return httpx.Response(200, json=self.targets)
        if path == "/json/new":
            url = unquote(request.url.query.decode()) or "about:blank"
            target = page_target(f"T{len(self.targets) + 1}", url=url)
            self.targets.append(target)
            return httpx.Response(200, json=target)
        if path.startswith("/json/close/"):
            target_id = path.rsplit("/", 1)[-1]
            self.targets = [t for t in self.targets if t["id"] != target_id]
            return httpx.Response(200, text="Target is closing")
        return httpx.Response(404)

    async def connect(self, url: str) -> FakeConnection:
        self.connected_urls.append(url)
        connection = FakeConnection(responder=lambda m: self.responder(m), label=url)
        self.connections.append(connection)
        return connection

    @property
    def last_connection(self) -> FakeConnection:
        return self.connections[-1]

    def commands(self, method: str | None = None) -> list[dict[str, Any]]:
        """Every command sent on any control connection, optionally filtered."""
        sent = [m for c in self.connections for m in c.sent]
        return [m for m in sent if method is None or m.get("method") == method]

    def client(self, **overrides: Any) -> RemoteCommandClient:
        overrides.setdefault("capture_console", False)
        config = CdpConfig(**overrides)
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(self.handle), base_url=config.base_url
        )
        return RemoteCommandClient(config, http_client=http_client, connector=self.connect)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def make_target() -> Callable[..., dict[str, Any]]:
    return page_target


@pytest.fixture
def make_connection() -> type[FakeConnection]:
    return FakeConnection


@pytest.fixture
def make_cdp() -> type[FakeCdp]:
    return FakeCdp


@pytest.fixture
def fake_cdp() -> FakeCdp:
    """Endpoint with one page target and one service worker."""
    return FakeCdp(
        [
            page_target("T1", "https://example.com", "Example"),
            page_target("W1", "https://example.com/sw.js", type="service_worker"),
        ]
    )


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    return _wait_until


@pytest.fixture
def socket_path():
    """Short Unix socket path; pytest's tmp_path can exceed the sun_path limit."""
    directory = tempfile.mkdtemp(prefix="bb-")
    yield os.path.join(directory, "bridge.sock")
    shutil.rmtree(directory, ignore_errors=True)
