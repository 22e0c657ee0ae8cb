"""Unit tests for the Transport Bridge.

The relay side is a FakeConnection handed out by the uplink's connector;
the local side is a real Unix socket.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from browser_bridge.bridge import LocalServer, TransportBridge, Uplink
from browser_bridge.config import ReconnectConfig


class RelayStub:
    """Connector for the uplink; optionally refuses connections."""

    def __init__(self, make_connection):
        self.make_connection = make_connection
        self.refuse = False
        self.connections = []

    async def __call__(self, url: str):
        if self.refuse:
            raise OSError("Connection refused")
        connection = self.make_connection(label="relay")
        self.connections.append(connection)
        return connection

    @property
    def sent(self) -> list:
        return [m for c in self.connections for m in c.sent]


@pytest.fixture
def relay(make_connection) -> RelayStub:
    return RelayStub(make_connection)


@pytest.fixture
def bridge(relay, socket_path) -> TransportBridge:
    uplink = Uplink(
        "ws://relay.test:19222",
        reconnect=ReconnectConfig(max_attempts=2),
        connector=relay,
        sleep=AsyncMock(),
    )
    return TransportBridge(uplink=uplink, local=LocalServer(socket_path))


def reply(request_id: str, payload) -> dict:
    return {"id": request_id, "direction": "from-chrome", "timestamp": 1, "payload": payload}


class TestForwarding:
    """End-to-end forwarding through both sides."""

    @pytest.mark.asyncio
    async def test_local_frame_wrapped_for_relay(self, bridge, relay, socket_path, wait_until) -> None:
        await bridge.start()
        try:
            await wait_until(lambda: bridge.uplink.is_connected)
            _, writer = await asyncio.open_unix_connection(socket_path)
            writer.write(b'{"toolName": "navigate", "arguments": {"url": "https://x"}}\n')
            await writer.drain()

            await wait_until(lambda: len(relay.sent) == 1)

            envelope = relay.sent[0]
            assert envelope["direction"] == "to-chrome"
            assert envelope["payload"] == {"toolName": "navigate", "arguments": {"url": "https://x"}}
            assert envelope["id"]
            assert isinstance(envelope["timestamp"], int)
            assert bridge.forwarded == 1
            writer.close()
        finally:
            await bridge.stop()

    @pytest.mark.asyncio
    async def test_relay_payload_delivered_verbatim(
        self, bridge, relay, socket_path, wait_until
    ) -> None:
        await bridge.start()
        try:
            await wait_until(lambda: bridge.uplink.is_connected)
            reader, writer = await asyncio.open_unix_connection(socket_path)
            await wait_until(lambda: bridge.local.peer is not None)

            payload = {"requestId": "r1", "result": {"success": True}}
            relay.connections[0].feed(reply("r1", payload))

            line = await asyncio.wait_for(reader.readline(), timeout=1.0)
            assert json.loads(line) == payload
            writer.close()
        finally:
            await bridge.stop()


class TestDrops:
    """Frames that cannot be forwarded are dropped, never queued."""

    @pytest.mark.asyncio
    async def test_relay_not_connected(self, bridge, relay) -> None:
        await bridge.forward_to_relay({"toolName": "navigate"})

        assert bridge.dropped == 1
        assert relay.sent == []

    @pytest.mark.asyncio
    async def test_unreachable_uplink_restarted_on_next_frame(
        self, bridge, relay, wait_until
    ) -> None:
        relay.refuse = True
        bridge.uplink.start()
        await bridge.uplink._supervisor
        assert bridge.uplink.unreachable

        relay.refuse = False
        await bridge.forward_to_relay({"toolName": "navigate"})

        assert bridge.dropped == 1
        assert not bridge.uplink.unreachable
        await wait_until(lambda: bridge.uplink.is_connected)
        assert relay.sent == []
        await bridge.uplink.stop()

    @pytest.mark.asyncio
    async def test_no_local_peer(self, bridge) -> None:
        await bridge.forward_to_local(reply("r1", {"requestId": "r1", "result": 1}))

        assert bridge.dropped == 1

    @pytest.mark.asyncio
    async def test_wrong_direction_ignored(self, bridge) -> None:
        message = reply("r1", {"toolName": "navigate"})
        message["direction"] = "to-chrome"

        await bridge.forward_to_local(message)

        assert bridge.dropped == 0
        assert bridge.forwarded == 0

    @pytest.mark.asyncio
    async def test_malformed_relay_message_ignored(self, bridge) -> None:
        await bridge.forward_to_local({"direction": "sideways"})

        assert bridge.dropped == 0
        assert bridge.forwarded == 0
