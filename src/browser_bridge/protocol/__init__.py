"""Wire protocol shared by the bridge, the relay and the MCP front-end."""

from .envelope import (
    Direction,
    Envelope,
    ToolCall,
    generate_message_id,
    now_ms,
)

__all__ = [
    "Direction",
    "Envelope",
    "ToolCall",
    "generate_message_id",
    "now_ms",
]
