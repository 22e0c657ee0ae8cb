"""Relay envelope and tool-call payloads.

Every message that crosses the bridge <-> relay link is wrapped in an
Envelope. The envelope id is the correlation id: the relay answers a
``to-chrome`` envelope with a ``from-chrome`` envelope carrying the same id.

Example request:
    {
        "id": "1718000000000-a1b2c3d",
        "direction": "to-chrome",
        "timestamp": 1718000000000,
        "payload": {"toolName": "navigate", "arguments": {"url": "http://x"}}
    }

Example response:
    {
        "id": "1718000000000-a1b2c3d",
        "direction": "from-chrome",
        "timestamp": 1718000000042,
        "payload": {"requestId": "1718000000000-a1b2c3d", "result": {"success": true}}
    }
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..errors import ParseError


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_message_id() -> str:
    """Fresh envelope id: epoch-ms plus a short random suffix."""
    return f"{now_ms()}-{uuid.uuid4().hex[:7]}"


class Direction(str, Enum):
    """Which way an envelope travels through the relay."""

    TO_REMOTE = "to-chrome"
    FROM_REMOTE = "from-chrome"


class Envelope(BaseModel):
    """Outer relay message."""

    id: str = Field(default_factory=generate_message_id)
    direction: Direction
    timestamp: int = Field(default_factory=now_ms)
    payload: Any = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # JSON-RPC clients frequently use integer ids
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_wire(self) -> dict[str, Any]:
        """Serialize for a JSON transport."""
        return self.model_dump(mode="json")

    @classmethod
    def from_wire(cls, data: Any) -> Envelope:
        """Validate an inbound message, raising ParseError on bad shape."""
        try:
            return cls.model_validate(data)
        except ValueError as e:
            recovered = data.get("id") if isinstance(data, dict) else None
            raise ParseError(
                f"Invalid envelope: {e}",
                details={"id": str(recovered)} if recovered is not None else None,
            ) from e

    @classmethod
    def request(cls, payload: Any, envelope_id: str | None = None) -> Envelope:
        """Wrap a payload heading towards the browser."""
        return cls(
            id=envelope_id or generate_message_id(),
            direction=Direction.TO_REMOTE,
            payload=payload,
        )

    @classmethod
    def response(
        cls,
        request_id: str,
        *,
        result: Any = None,
        error: dict[str, Any] | None = None,
        echo_id: Any = None,
    ) -> Envelope:
        """Build the reply for ``request_id``.

        ``error`` is the dict produced by ``BridgeError.to_payload``; when
        present it replaces ``result``. ``echo_id`` is the caller's own
        JSON-RPC id, returned untouched so it can match replies itself.
        """
        payload: dict[str, Any] = {"requestId": request_id}
        if error is not None:
            payload.update(error)
        else:
            payload["result"] = result
        if echo_id is not None:
            payload["id"] = echo_id
        return cls(id=request_id, direction=Direction.FROM_REMOTE, payload=payload)


class ToolCall(BaseModel):
    """A tool invocation extracted from an envelope payload."""

    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    rpc_id: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> ToolCall:
        """Accept both the plain and the JSON-RPC ``tools/call`` shapes.

        Plain:    {"toolName": "navigate", "arguments": {...}}
                  {"tool": "navigate", "args": {...}}
        JSON-RPC: {"jsonrpc": "2.0", "id": 7, "method": "tools/call",
                   "params": {"name": "navigate", "arguments": {...}}}
        """
        if not isinstance(payload, dict):
            raise ParseError("Tool call payload must be an object")

        params = payload.get("params")
        if isinstance(params, dict) and "name" in params:
            name = params.get("name")
            arguments = params.get("arguments") or {}
        else:
            name = payload.get("toolName") or payload.get("tool")
            arguments = payload.get("arguments", payload.get("args")) or {}

        if not isinstance(name, str) or not name:
            raise ParseError("Tool call payload has no tool name")
        if not isinstance(arguments, dict):
            raise ParseError("Tool call arguments must be an object")

        return cls(tool_name=name, arguments=arguments, rpc_id=payload.get("id"))
