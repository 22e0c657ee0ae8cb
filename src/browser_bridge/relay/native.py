"""Native-messaging session.

Serves one relay session over this process's stdin/stdout using Chrome's
native messaging framing (4-byte little-endian length + UTF-8 JSON). Stdout
belongs to the protocol, so logging must already be routed to stderr.
"""

from __future__ import annotations

import logging

from ..config import MAX_FRAME_SIZE
from ..transport import LengthPrefixedCodec, open_stdio_connection
from .core import RelayCore

logger = logging.getLogger(__name__)


async def serve_native_messaging(core: RelayCore, max_frame_size: int = MAX_FRAME_SIZE) -> None:
    """Run a stdio session until stdin closes."""
    connection = await open_stdio_connection(
        LengthPrefixedCodec(max_frame_size), label="native-messaging"
    )
    logger.info("Native messaging session started")
    await core.serve(connection)
    logger.info("Native messaging stdin closed")
