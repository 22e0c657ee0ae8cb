"""Transport Bridge.

Joins the local consumer (Unix socket, newline JSON) to the relay
(WebSocket, envelopes):

    local frame            -> Envelope(direction="to-chrome", fresh id) -> relay
    relay "from-chrome"    -> envelope payload, verbatim               -> local peer

Nothing is queued. A frame that cannot be forwarded right now is dropped
with a warning; the local consumer owns retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..config import BridgeConfig
from ..errors import BridgeError, ParseError
from ..protocol import Direction, Envelope
from .local_server import LocalServer
from .uplink import Uplink

logger = logging.getLogger(__name__)


class TransportBridge:
    """One uplink plus one local peer."""

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        uplink: Uplink | None = None,
        local: LocalServer | None = None,
    ):
        self.config = config or BridgeConfig()
        self.uplink = uplink or Uplink(
            self.config.relay_url,
            reconnect=self.config.reconnect,
            connect_timeout=self.config.connect_timeout,
            max_size=self.config.max_message_size,
        )
        self.local = local or LocalServer(
            self.config.socket_path, max_size=self.config.max_message_size
        )
        self.uplink.on_message = self.forward_to_local
        self.local.on_message = self.forward_to_relay
        self.forwarded = 0
        self.dropped = 0

    async def start(self) -> None:
        logger.info(f"Relay target: {self.uplink.url}")
        logger.info(f"Unix socket: {self.local.socket_path}")
        self.uplink.start()
        await self.local.start()
        logger.info("Ready for local connections")

    async def stop(self) -> None:
        await self.uplink.stop()
        await self.local.stop()
        logger.info(f"Bridge stopped ({self.forwarded} forwarded, {self.dropped} dropped)")

    async def run_forever(self) -> None:
        """Start, then block until cancelled."""
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    async def forward_to_relay(self, message: Any) -> None:
        """Wrap a local frame in a fresh ``to-chrome`` envelope and send it upstream."""
        if not self.uplink.is_connected:
            self.dropped += 1
            logger.warning("Cannot forward to relay: not connected")
            if self.uplink.unreachable:
                self.uplink.start()
            return

        envelope = Envelope.request(message)
        try:
            await self.uplink.send(envelope.to_wire())
        except BridgeError as e:
            self.dropped += 1
            logger.warning(f"Cannot forward {envelope.id} to relay: {e}")
            return
        self.forwarded += 1
        logger.debug(f"Forwarded {envelope.id} to relay")

    async def forward_to_local(self, message: Any) -> None:
        """Unwrap a ``from-chrome`` envelope and hand its payload to the local peer."""
        try:
            envelope = Envelope.from_wire(message)
        except ParseError as e:
            logger.warning(f"Dropping malformed relay message: {e}")
            return

        if envelope.direction != Direction.FROM_REMOTE:
            logger.warning(f"Received message with unexpected direction: {envelope.direction.value}")
            return

        if self.local.peer is None:
            self.dropped += 1
            logger.warning("Cannot forward to local client: not connected")
            return

        try:
            await self.local.send(envelope.payload)
        except BridgeError as e:
            self.dropped += 1
            logger.warning(f"Cannot forward {envelope.id} to local client: {e}")
            return
        self.forwarded += 1
