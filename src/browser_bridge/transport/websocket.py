"""WebSocket framed connections.

One JSON document per WebSocket message; no manual length prefixing.

- WebSocketConnection wraps a ``websockets`` client connection (CDP control
  link, bridge uplink, MCP front-end uplink).
- StarletteWebSocketConnection wraps a Starlette server-side WebSocket
  (the relay endpoint).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import websockets
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from ..config import MAX_MESSAGE_SIZE
from ..errors import TransportUnavailable
from .base import FramedConnection
from .framing import WebSocketJsonCodec

logger = logging.getLogger(__name__)


class WebSocketConnection(FramedConnection):
    """FramedConnection over a ``websockets`` client protocol object."""

    def __init__(self, websocket: Any, max_size: int = MAX_MESSAGE_SIZE, **kwargs: Any):
        kwargs.setdefault("label", "websocket")
        super().__init__(**kwargs)
        self._websocket = websocket
        self._codec = WebSocketJsonCodec(max_size)

    async def _send_frame(self, message: Any) -> None:
        text = self._codec.encode(message)
        try:
            await self._websocket.send(text)
        except websockets.ConnectionClosed as e:
            raise TransportUnavailable(f"{self.label} closed: {e}") from e

    async def _receive_items(self) -> AsyncIterator[Any]:
        try:
            async for data in self._websocket:
                yield self._codec.decode(data)
        except websockets.ConnectionClosedError as e:
            logger.info(f"{self.label} closed abnormally: {e}")

    async def _do_close(self, code: int, reason: str) -> None:
        await self._websocket.close(code, reason)


async def connect_websocket(
    url: str,
    *,
    open_timeout: float = 5.0,
    max_size: int = MAX_MESSAGE_SIZE,
    **kwargs: Any,
) -> WebSocketConnection:
    """Open a client WebSocket and wrap it.

    Raises:
        TransportUnavailable: The endpoint refused, timed out or rejected the handshake
    """
    try:
        websocket = await websockets.connect(
            url,
            open_timeout=open_timeout,
            max_size=None,  # Size limits are enforced by the codec
            ping_interval=30,
            ping_timeout=10,
        )
    except (OSError, asyncio.TimeoutError, websockets.InvalidHandshake) as e:
        raise TransportUnavailable(f"Cannot connect to {url}: {e}") from e

    kwargs.setdefault("label", url)
    return WebSocketConnection(websocket, max_size=max_size, **kwargs)


class StarletteWebSocketConnection(FramedConnection):
    """FramedConnection over an accepted Starlette WebSocket."""

    def __init__(self, websocket: WebSocket, max_size: int = MAX_MESSAGE_SIZE, **kwargs: Any):
        kwargs.setdefault("label", "websocket-session")
        super().__init__(**kwargs)
        self._websocket = websocket
        self._codec = WebSocketJsonCodec(max_size)
        self._send_lock = asyncio.Lock()

    async def _send_frame(self, message: Any) -> None:
        text = self._codec.encode(message)
        async with self._send_lock:
            if self._websocket.client_state != WebSocketState.CONNECTED:
                raise TransportUnavailable(f"{self.label} client is gone")
            try:
                await self._websocket.send_text(text)
            except (WebSocketDisconnect, RuntimeError) as e:
                raise TransportUnavailable(f"{self.label} send failed: {e}") from e

    async def _receive_items(self) -> AsyncIterator[Any]:
        while not self._closed:
            message = await self._websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug(f"{self.label} disconnected (code={message.get('code')})")
                break
            data = message.get("text")
            if data is None:
                data = message.get("bytes")
            if data is None:
                continue
            yield self._codec.decode(data)

    async def _do_close(self, code: int, reason: str) -> None:
        if self._websocket.application_state == WebSocketState.CONNECTED:
            await self._websocket.close(code=code, reason=reason)
