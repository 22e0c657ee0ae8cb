"""Transport layer.

Codecs and framed connections for the three boundaries the relay spans:
- length-prefixed stdio (native messaging)
- newline-delimited JSON over a Unix domain socket
- JSON over WebSocket

Everything above this package talks to a FramedConnection and never to a
raw socket.
"""

from .base import ConnectionState, FramedConnection
from .framing import (
    LengthPrefixedCodec,
    NewlineJsonCodec,
    StreamCodec,
    WebSocketJsonCodec,
)
from .stream import StreamConnection, open_stdio_connection
from .websocket import (
    StarletteWebSocketConnection,
    WebSocketConnection,
    connect_websocket,
)

__all__ = [
    # Base abstractions
    "ConnectionState",
    "FramedConnection",
    # Codecs
    "LengthPrefixedCodec",
    "NewlineJsonCodec",
    "StreamCodec",
    "WebSocketJsonCodec",
    # Stream implementation
    "StreamConnection",
    "open_stdio_connection",
    # WebSocket implementations
    "StarletteWebSocketConnection",
    "WebSocketConnection",
    "connect_websocket",
]
