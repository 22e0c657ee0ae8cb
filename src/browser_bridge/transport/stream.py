"""Framed connection over asyncio streams.

Used for the Unix domain socket to the local consumer (newline JSON) and
for Chrome-style native messaging over stdin/stdout (length-prefixed JSON).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from typing import Any

from .base import FramedConnection
from .framing import StreamCodec

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024


class StreamConnection(FramedConnection):
    """FramedConnection over a StreamReader/StreamWriter pair."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        codec: StreamCodec,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._reader = reader
        self._writer = writer
        self._codec = codec
        self._send_lock = asyncio.Lock()

    @property
    def codec(self) -> StreamCodec:
        return self._codec

    async def run(self) -> None:
        try:
            await super().run()
        finally:
            # Peer EOF leaves the transport half-open
            self._writer.close()

    async def _send_frame(self, message: Any) -> None:
        # Encode before taking the lock so an oversized frame fails alone
        frame = self._codec.encode(message)
        async with self._send_lock:
            self._writer.write(frame)
            await self._writer.drain()

    async def _receive_items(self) -> AsyncIterator[Any]:
        while not self._closed:
            chunk = await self._reader.read(READ_CHUNK)
            if not chunk:
                if self._codec.buffered:
                    logger.debug(f"{self.label}: EOF with {self._codec.buffered} bytes of partial frame")
                break
            for item in self._codec.feed(chunk):
                yield item

    async def _do_close(self, code: int, reason: str) -> None:
        self._writer.close()
        await self._writer.wait_closed()


async def open_stdio_connection(codec: StreamCodec, **kwargs: Any) -> StreamConnection:
    """Wrap this process's stdin/stdout as a StreamConnection.

    Stdout must carry protocol frames only; logging has to go to stderr.
    """
    loop = asyncio.get_running_loop()

    reader = asyncio.StreamReader()
    read_protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: read_protocol, sys.stdin.buffer)

    transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout.buffer
    )
    writer = asyncio.StreamWriter(transport, write_protocol, reader, loop)

    kwargs.setdefault("label", "stdio")
    return StreamConnection(reader, writer, codec, **kwargs)
