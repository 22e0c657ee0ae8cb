"""Reconnecting uplink to the relay.

Keeps one outbound WebSocket to the relay open. A supervisor task drives the
state machine

    disconnected -> connecting -> connected -> disconnected -> ...

and retries failed connects with capped exponential backoff. After
``max_attempts`` consecutive failures it gives up (CRITICAL log) and the
uplink is *unreachable* until someone calls ``start()`` or
``ensure_connected()`` again.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import MAX_MESSAGE_SIZE, ReconnectConfig
from ..errors import BridgeError, TransportUnavailable
from ..transport import ConnectionState, FramedConnection, connect_websocket

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[FramedConnection]]
MessageHandler = Callable[[Any], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[Any]]


class Uplink:
    """Single outbound connection with automatic reconnection."""

    def __init__(
        self,
        url: str,
        *,
        reconnect: ReconnectConfig | None = None,
        connect_timeout: float = 5.0,
        max_size: int = MAX_MESSAGE_SIZE,
        on_message: MessageHandler | None = None,
        connector: Connector | None = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.url = url
        self.reconnect = reconnect or ReconnectConfig()
        self.connect_timeout = connect_timeout
        self.max_size = max_size
        self.on_message = on_message
        self._connector = connector or self._open_websocket
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._connection: FramedConnection | None = None
        self._supervisor: asyncio.Task[None] | None = None
        self._connected = asyncio.Event()
        self._failures = 0
        self._unreachable = False
        self._stopping = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return (
            self._state == ConnectionState.CONNECTED
            and self._connection is not None
            and self._connection.is_open
        )

    @property
    def unreachable(self) -> bool:
        """True once reconnection gave up; cleared by the next start()."""
        return self._unreachable

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def running(self) -> bool:
        return self._supervisor is not None and not self._supervisor.done()

    def start(self) -> None:
        """Start (or restart after giving up) the reconnection supervisor."""
        if self.running:
            return
        if self._unreachable:
            logger.info(f"Retrying unreachable relay at {self.url}")
        self._stopping = False
        self._unreachable = False
        self._failures = 0
        self._supervisor = asyncio.create_task(self._supervise())

    async def ensure_connected(self, timeout: float | None = None) -> bool:
        """Start the supervisor if needed and wait up to ``timeout`` for a connection."""
        if self.is_connected:
            return True
        self.start()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._connected.wait(), timeout or self.connect_timeout)
        return self.is_connected

    async def send(self, message: Any) -> None:
        """Send one message upstream.

        Raises:
            TransportUnavailable: The uplink is not connected
        """
        connection = self._connection
        if connection is None or not self.is_connected:
            raise TransportUnavailable(f"Not connected to relay at {self.url}")
        await connection.send(message)

    async def stop(self) -> None:
        """Stop reconnecting and close the connection."""
        self._stopping = True
        connection, self._connection = self._connection, None
        supervisor, self._supervisor = self._supervisor, None
        if supervisor is not None:
            supervisor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await supervisor
        if connection is not None:
            await connection.close()
        self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug(f"Uplink {self._state.value} -> {state.value}")
        self._state = state
        if state == ConnectionState.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()

    async def _open_websocket(self, url: str) -> FramedConnection:
        return await connect_websocket(
            url, open_timeout=self.connect_timeout, max_size=self.max_size, label="uplink"
        )

    async def _supervise(self) -> None:
        while not self._stopping:
            if self._failures:
                delay = self.reconnect.delay_for(self._failures)
                if self._failures == 1:
                    logger.info(f"Relay not available, retrying in {delay:.1f}s")
                else:
                    logger.info(f"Still waiting for relay (attempt {self._failures}), next in {delay:.1f}s")
                await self._sleep(delay)

            self._set_state(ConnectionState.CONNECTING)
            logger.info(f"Connecting to relay at {self.url}...")
            try:
                connection = await self._connector(self.url)
            except (BridgeError, OSError) as e:
                self._set_state(ConnectionState.DISCONNECTED)
                self._failures += 1
                logger.debug(f"Connect attempt {self._failures} failed: {e}")
                if self._failures >= self.reconnect.max_attempts:
                    self._unreachable = True
                    logger.critical(
                        f"Max reconnection attempts ({self.reconnect.max_attempts}) reached; "
                        f"relay at {self.url} is unreachable"
                    )
                    return
                continue

            self._failures = 0
            await self._run_connection(connection)

            if not self._stopping:
                logger.warning("Disconnected from relay, reconnecting")
                await self._sleep(self.reconnect.delay_for(1))

    async def _run_connection(self, connection: FramedConnection) -> None:
        async def on_error(error: Exception) -> None:
            logger.warning(f"Uplink error: {error}")

        connection.set_handlers(on_message=self._dispatch, on_error=on_error)
        self._connection = connection
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"Connected to relay at {self.url}")
        try:
            await connection.run()
        finally:
            if self._connection is connection:
                self._connection = None
            self._set_state(ConnectionState.DISCONNECTED)

    async def _dispatch(self, message: Any) -> None:
        if self.on_message is not None:
            await self.on_message(message)
