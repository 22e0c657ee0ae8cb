"""Error taxonomy for the relay.

Every error that can cross a connection boundary derives from BridgeError
and carries a stable ``code`` that is written into error payloads, so a
consumer on the far side of several hops can tell failures apart without
parsing messages.
"""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for all relay errors."""

    code = "internal_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        """Error fields for a response payload."""
        data: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            data["details"] = self.details
        return data


class TransportUnavailable(BridgeError):
    """The remote endpoint refused or dropped the connection."""

    code = "transport_unavailable"


class NoTarget(BridgeError):
    """No matching target exists on the remote endpoint."""

    code = "no_target"


class CommandTimeout(BridgeError):
    """A command got no response before its deadline."""

    code = "timeout"


class ParseError(BridgeError):
    """A single frame could not be decoded. The stream itself stays usable."""

    code = "parse_error"


class SizeExceeded(BridgeError):
    """An outbound frame is larger than the configured maximum."""

    code = "size_exceeded"


class UnknownTool(BridgeError):
    """The tool name is not in the dispatch table."""

    code = "unknown_tool"


class ProtocolViolation(BridgeError):
    """Duplicate or ambiguous correlation id."""

    code = "protocol_violation"


class RemoteCommandError(BridgeError):
    """The remote endpoint answered a command with an error."""

    code = "remote_error"


class ScriptError(RemoteCommandError):
    """Script evaluation raised an exception inside the page."""

    code = "script_error"


__all__ = [
    "BridgeError",
    "CommandTimeout",
    "NoTarget",
    "ParseError",
    "ProtocolViolation",
    "RemoteCommandError",
    "ScriptError",
    "SizeExceeded",
    "TransportUnavailable",
    "UnknownTool",
]
