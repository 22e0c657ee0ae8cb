"""Integration tests for WebSocketConnection against a real websockets server."""

import asyncio
import json
import socket

import pytest
import pytest_asyncio
import websockets

from browser_bridge.errors import ParseError, TransportUnavailable
from browser_bridge.transport import connect_websocket


async def echo(websocket) -> None:
    async for message in websocket:
        if message == "close-me":
            await websocket.close(4001, "bye")
            return
        await websocket.send(message)


@pytest_asyncio.fixture
async def echo_url():
    async with websockets.serve(echo, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}"


def unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_send_and_receive(echo_url, wait_until):
    received = []

    async def on_message(message) -> None:
        received.append(message)

    connection = await connect_websocket(echo_url, label="test")
    connection.set_handlers(on_message=on_message)
    task = asyncio.create_task(connection.run())

    await connection.send({"id": 1, "method": "Page.navigate", "params": {"url": "https://x"}})
    await wait_until(lambda: len(received) == 1)

    assert received == [{"id": 1, "method": "Page.navigate", "params": {"url": "https://x"}}]
    await connection.close()
    await asyncio.wait_for(task, timeout=1.0)


@pytest.mark.asyncio
async def test_malformed_message_reported_to_on_error(echo_url, wait_until):
    errors = []
    received = []

    async def on_error(error: Exception) -> None:
        errors.append(error)

    async def on_message(message) -> None:
        received.append(message)

    connection = await connect_websocket(echo_url)
    connection.set_handlers(on_message=on_message, on_error=on_error)
    task = asyncio.create_task(connection.run())

    # The echo server bounces raw text, so a non-JSON string comes back as-is
    await connection._websocket.send("{not json")
    await connection.send({"ok": True})
    await wait_until(lambda: len(received) == 1)

    assert isinstance(errors[0], ParseError)
    assert received == [{"ok": True}]
    await connection.close()
    await asyncio.wait_for(task, timeout=1.0)


@pytest.mark.asyncio
async def test_server_close_fires_on_close(echo_url):
    closed = asyncio.Event()

    async def on_close() -> None:
        closed.set()

    connection = await connect_websocket(echo_url)
    connection.set_handlers(on_close=on_close)
    task = asyncio.create_task(connection.run())

    await connection._websocket.send("close-me")
    await asyncio.wait_for(task, timeout=1.0)

    assert closed.is_set()
    assert not connection.is_open
    with pytest.raises(TransportUnavailable):
        await connection.send({"n": 1})


@pytest.mark.asyncio
async def test_connect_refused():
    with pytest.raises(TransportUnavailable, match="Cannot connect"):
        await connect_websocket(f"ws://127.0.0.1:{unused_port()}", open_timeout=1.0)


@pytest.mark.asyncio
async def test_frames_are_plain_json_text(echo_url):
    connection = await connect_websocket(echo_url)

    await connection.send({"text": "héllo"})
    raw = await asyncio.wait_for(connection._websocket.recv(), timeout=1.0)

    assert isinstance(raw, str)
    assert json.loads(raw) == {"text": "héllo"}
    await connection.close()
