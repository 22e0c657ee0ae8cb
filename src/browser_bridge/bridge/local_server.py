"""Unix domain socket server for the local consumer.

Accepts newline-delimited JSON connections on a per-user socket path. Exactly
one peer is active at a time: a new connection evicts and closes the previous
one.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import MAX_MESSAGE_SIZE
from ..errors import TransportUnavailable
from ..transport import NewlineJsonCodec, StreamConnection

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Awaitable[None]]

SOCKET_MODE = 0o777


class LocalServer:
    """Single-peer Unix socket server."""

    def __init__(
        self,
        socket_path: str,
        *,
        max_size: int = MAX_MESSAGE_SIZE,
        on_message: MessageHandler | None = None,
    ):
        self.socket_path = socket_path
        self.max_size = max_size
        self.on_message = on_message
        self._server: asyncio.AbstractServer | None = None
        self._peer: StreamConnection | None = None
        self._peer_count = 0

    @property
    def peer(self) -> StreamConnection | None:
        """The active local connection, if any."""
        if self._peer is not None and self._peer.is_open:
            return self._peer
        return None

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        """Bind the socket, replacing a stale socket file if present."""
        if os.path.exists(self.socket_path):
            logger.info(f"Removing stale socket: {self.socket_path}")
            os.unlink(self.socket_path)

        self._server = await asyncio.start_unix_server(self._handle_client, path=self.socket_path)
        try:
            os.chmod(self.socket_path, SOCKET_MODE)
        except OSError as e:
            logger.debug(f"Could not chmod {self.socket_path}: {e}")
        logger.info(f"Unix socket created at {self.socket_path}")

    async def send(self, message: Any) -> None:
        """Write one message to the active peer.

        Raises:
            TransportUnavailable: No peer is connected
        """
        peer = self.peer
        if peer is None:
            raise TransportUnavailable("No local client connected")
        await peer.send(message)

    async def stop(self) -> None:
        """Close the peer and the server, and remove the socket file."""
        if self._peer is not None:
            await self._peer.close()
            self._peer = None
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError as e:
                logger.warning(f"Could not remove {self.socket_path}: {e}")

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._peer_count += 1
        connection = StreamConnection(
            reader,
            writer,
            NewlineJsonCodec(self.max_size),
            label=f"local-peer-{self._peer_count}",
        )

        previous, self._peer = self._peer, connection
        if previous is not None and previous.is_open:
            logger.warning("New local connection replacing existing one")
            await previous.close()
        logger.info(f"Local client connected ({connection.label})")

        async def on_close() -> None:
            if self._peer is connection:
                self._peer = None
            logger.info(f"Local client disconnected ({connection.label})")

        async def on_error(error: Exception) -> None:
            logger.warning(f"Local client error: {error}")

        connection.set_handlers(on_message=self._dispatch, on_close=on_close, on_error=on_error)
        await connection.run()

    async def _dispatch(self, message: Any) -> None:
        if self.on_message is not None:
            await self.on_message(message)
