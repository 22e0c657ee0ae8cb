"""MCP stdio front-end.

Speaks newline-delimited JSON-RPC 2.0 on stdin/stdout and forwards
``tools/call`` requests to the relay over the uplink. Everything else
(initialize, tools/list, ping) is answered locally.

    stdin  {"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {...}}
      -> relay  Envelope(id="7", direction="to-chrome", payload=<same request>)
      <- relay  Envelope(direction="from-chrome", payload={"requestId": "7", "result": ...})
    stdout {"jsonrpc": "2.0", "id": 7, "result": {"content": [...]}}

Stdout belongs to the protocol; all logging goes to stderr.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel

from .. import __version__
from ..bridge import Uplink
from ..errors import BridgeError, ParseError
from ..protocol import Direction, Envelope
from ..transport import FramedConnection, NewlineJsonCodec, open_stdio_connection
from .tools import BROWSER_TOOLS

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "browser-bridge"


class JsonRpcErrorCode:
    """JSON-RPC 2.0 error codes used by the front-end."""

    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    SERVER_ERROR = -32000  # Relay unreachable or tool failure


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int | None
    result: Any | None = None
    error: JsonRpcError | None = None

    @classmethod
    def success(cls, request_id: Any, result: Any) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls, request_id: Any, code: int, message: str, data: Any = None
    ) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError(code=code, message=message, data=data))

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        if self.error is None:
            data.setdefault("result", None)
        data["id"] = self.id
        return data


def to_tool_result(result: Any) -> dict[str, Any]:
    """Convert a relay tool result into MCP ``content`` blocks."""
    if isinstance(result, dict) and result.get("type") == "image":
        return {
            "content": [
                {
                    "type": "image",
                    "data": result.get("data", ""),
                    "mimeType": result.get("mediaType") or result.get("mimeType") or "image/png",
                }
            ]
        }
    return {"content": [{"type": "text", "text": json.dumps(result)}]}


class McpServer:
    """JSON-RPC front-end that forwards tool calls to the relay."""

    def __init__(
        self,
        uplink: Uplink,
        *,
        connect_timeout: float = 5.0,
        output: FramedConnection | None = None,
    ):
        self.uplink = uplink
        self.uplink.on_message = self.handle_relay_message
        self.connect_timeout = connect_timeout
        self.output = output
        self._pending: dict[str, Any] = {}
        self._initialized = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def run(self) -> None:
        """Serve stdin/stdout until stdin closes."""
        self.output = await open_stdio_connection(NewlineJsonCodec(), label="mcp-stdio")
        self.output.set_handlers(on_message=self.handle_message, on_error=self._on_stdin_error)

        logger.info(f"Connecting to relay at {self.uplink.url}...")
        if not await self.uplink.ensure_connected(self.connect_timeout):
            logger.warning("Could not connect to relay; browser tools will fail until it is up")

        logger.info("MCP server ready")
        try:
            await self.output.run()
        finally:
            logger.info("stdin closed, shutting down")
            await self.uplink.stop()

    async def _on_stdin_error(self, error: Exception) -> None:
        logger.warning(f"Failed to parse MCP message: {error}")

    async def handle_message(self, message: Any) -> None:
        """Handle one JSON-RPC message from stdin."""
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object MCP message: {message!r:.100}")
            return

        method = message.get("method")
        request_id = message.get("id")
        logger.debug(f"MCP request: {method} (id: {request_id})")

        match method:
            case "initialize":
                self._initialized = True
                await self._respond(
                    JsonRpcResponse.success(
                        request_id,
                        {
                            "protocolVersion": PROTOCOL_VERSION,
                            "capabilities": {"tools": {}},
                            "serverInfo": {"name": SERVER_NAME, "version": __version__},
                        },
                    )
                )

            case "initialized" | "notifications/initialized":
                logger.info("Client initialized")

            case "tools/list":
                await self._respond(JsonRpcResponse.success(request_id, {"tools": BROWSER_TOOLS}))

            case "tools/call":
                await self._tool_call(request_id, message.get("params") or {})

            case "ping":
                await self._respond(JsonRpcResponse.success(request_id, {}))

            case _:
                if request_id is None:
                    logger.debug(f"Ignoring notification: {method}")
                    return
                logger.warning(f"Unknown method: {method}")
                await self._respond(
                    JsonRpcResponse.failure(
                        request_id, JsonRpcErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}"
                    )
                )

    async def _tool_call(self, request_id: Any, params: dict[str, Any]) -> None:
        if request_id is None:
            logger.warning("Ignoring tools/call without an id")
            return

        name = params.get("name")
        if not isinstance(name, str) or not name:
            await self._respond(
                JsonRpcResponse.failure(
                    request_id, JsonRpcErrorCode.INVALID_PARAMS, "tools/call requires params.name"
                )
            )
            return

        key = str(request_id)
        if key in self._pending:
            await self._respond(
                JsonRpcResponse.failure(
                    request_id,
                    JsonRpcErrorCode.INVALID_REQUEST,
                    f"Request id {request_id} is already in flight",
                )
            )
            return

        if not await self.uplink.ensure_connected(self.connect_timeout):
            logger.warning("Not connected to relay")
            await self._respond(
                JsonRpcResponse.failure(
                    request_id,
                    JsonRpcErrorCode.SERVER_ERROR,
                    "Not connected to the browser relay. Make sure the relay host is running.",
                )
            )
            return

        envelope = Envelope.request(
            {
                "jsonrpc": "2.0",
                "method": "tools/call",
                "params": {"name": name, "arguments": params.get("arguments") or {}},
                "id": request_id,
            },
            envelope_id=key,
        )
        self._pending[key] = request_id
        try:
            await self.uplink.send(envelope.to_wire())
        except BridgeError as e:
            self._pending.pop(key, None)
            await self._respond(
                JsonRpcResponse.failure(request_id, JsonRpcErrorCode.SERVER_ERROR, str(e))
            )
            return
        logger.debug(f"Forwarded tool call {name} (id: {request_id})")

    async def handle_relay_message(self, message: Any) -> None:
        """Turn a ``from-chrome`` envelope into the JSON-RPC reply it answers."""
        try:
            envelope = Envelope.from_wire(message)
        except ParseError as e:
            logger.warning(f"Failed to parse relay message: {e}")
            return

        payload = envelope.payload
        if envelope.direction != Direction.FROM_REMOTE or not isinstance(payload, dict):
            logger.warning(f"Ignoring relay message {envelope.id}")
            return

        key = str(payload.get("requestId") or envelope.id)
        if key not in self._pending:
            logger.debug(f"No pending request for {key}")
            return
        request_id = self._pending.pop(key)

        if payload.get("error") is not None:
            error = payload["error"]
            text = error if isinstance(error, str) else json.dumps(error)
            data = {"code": payload["code"]} if payload.get("code") else None
            await self._respond(
                JsonRpcResponse.failure(request_id, JsonRpcErrorCode.SERVER_ERROR, text, data)
            )
            return

        result = payload.get("result")
        await self._respond(
            JsonRpcResponse.success(request_id, to_tool_result(result if result is not None else payload))
        )

    async def _respond(self, response: JsonRpcResponse) -> None:
        if self.output is None:
            logger.warning(f"No output attached; dropping response for {response.id}")
            return
        await self.output.send(response.to_wire())
