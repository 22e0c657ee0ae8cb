"""MCP stdio front-end that forwards browser tool calls to the relay."""

from .server import (
    PROTOCOL_VERSION,
    JsonRpcErrorCode,
    JsonRpcResponse,
    McpServer,
    to_tool_result,
)
from .tools import BROWSER_TOOLS, tool_names

__all__ = [
    "BROWSER_TOOLS",
    "PROTOCOL_VERSION",
    "JsonRpcErrorCode",
    "JsonRpcResponse",
    "McpServer",
    "to_tool_result",
    "tool_names",
]
