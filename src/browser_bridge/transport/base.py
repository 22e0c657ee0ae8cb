"""Framed connection abstraction.

One polymorphic connection type for every transport boundary. A connection
exposes a fixed capability set of async handlers:

- on_message(message): a decoded JSON message arrived
- on_close(): the connection ended (fires exactly once)
- on_error(error): a frame failed to decode, or the transport errored

and drives them from ``run()``, its read loop. Variants only supply the
raw send/receive/close primitives:

- StreamConnection: asyncio streams + a StreamCodec (stdio, Unix socket)
- WebSocketConnection: a ``websockets`` client connection
- StarletteWebSocketConnection: a Starlette server-side WebSocket
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any

from ..errors import ParseError, TransportUnavailable

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Awaitable[None]]
CloseHandler = Callable[[], Awaitable[None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]


class ConnectionState(str, Enum):
    """Link state machine shared by the CDP control link and the bridge uplink."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class FramedConnection(ABC):
    """A bidirectional message connection with handler callbacks."""

    def __init__(
        self,
        *,
        label: str = "connection",
        on_message: MessageHandler | None = None,
        on_close: CloseHandler | None = None,
        on_error: ErrorHandler | None = None,
    ):
        self.label = label
        self.on_message = on_message
        self.on_close = on_close
        self.on_error = on_error
        self._closed = False
        self._close_notified = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def set_handlers(
        self,
        *,
        on_message: MessageHandler | None = None,
        on_close: CloseHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        """Install handlers; ``None`` leaves an existing handler in place."""
        if on_message is not None:
            self.on_message = on_message
        if on_close is not None:
            self.on_close = on_close
        if on_error is not None:
            self.on_error = on_error

    async def send(self, message: Any) -> None:
        """Encode and send one message.

        Raises:
            TransportUnavailable: The connection is closed
            SizeExceeded: The encoded message is over the frame limit
        """
        if self._closed:
            raise TransportUnavailable(f"{self.label} is closed")
        try:
            await self._send_frame(message)
        except (ConnectionError, OSError) as e:
            raise TransportUnavailable(f"{self.label} send failed: {e}") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._do_close(code, reason)
        except Exception as e:
            logger.debug(f"{self.label} close error: {e}")

    async def run(self) -> None:
        """Read until the peer goes away, dispatching to the handlers."""
        try:
            async for item in self._receive_items():
                if isinstance(item, ParseError):
                    await self._emit_error(item)
                    continue
                await self._emit_message(item)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._closed:
                await self._emit_error(e)
        finally:
            self._closed = True
            await self._notify_close()

    async def _emit_message(self, message: Any) -> None:
        if self.on_message is None:
            return
        try:
            await self.on_message(message)
        except Exception as e:
            logger.exception(f"{self.label} message handler failed: {e}")
            await self._emit_error(e)

    async def _emit_error(self, error: Exception) -> None:
        if self.on_error is None:
            logger.warning(f"{self.label} error: {error}")
            return
        try:
            await self.on_error(error)
        except Exception as e:
            logger.exception(f"{self.label} error handler failed: {e}")

    async def _notify_close(self) -> None:
        if self._close_notified:
            return
        self._close_notified = True
        if self.on_close is None:
            return
        try:
            await self.on_close()
        except Exception as e:
            logger.exception(f"{self.label} close handler failed: {e}")

    # Transport primitives

    @abstractmethod
    async def _send_frame(self, message: Any) -> None:
        """Encode and write one message."""
        ...

    @abstractmethod
    def _receive_items(self) -> AsyncIterator[Any]:
        """Yield decoded messages or ParseError items. Must be an async generator."""
        ...

    @abstractmethod
    async def _do_close(self, code: int, reason: str) -> None:
        """Close the underlying transport."""
        ...
