"""Configuration for the relay, the bridge and the CDP client.

Defaults mirror the ports and limits the browser side expects. Every value
can be overridden from the environment (``BROWSER_BRIDGE_*``) and, on top of
that, from CLI options.
"""

from __future__ import annotations

import getpass
import os
from dataclasses import dataclass, field
from enum import Enum

ENV_PREFIX = "BROWSER_BRIDGE_"

# Chrome's native messaging limit
MAX_FRAME_SIZE = 1024 * 1024

# WebSocket and newline JSON links; full-page screenshots run to several MiB
MAX_MESSAGE_SIZE = 64 * 1024 * 1024

RELAY_PORT = 19222
CDP_PORT = 9222


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    return float(value) if value else default


def default_socket_path() -> str:
    """Per-user Unix socket path the local consumer connects to."""
    return f"/tmp/claude-mcp-browser-bridge-{getpass.getuser()}"


class AcceptPolicy(str, Enum):
    """How the relay treats additional downstream connections."""

    MULTI = "multi"  # Unbounded concurrent sessions
    SINGLE = "single"  # First session wins, later ones are rejected


@dataclass
class ReconnectConfig:
    """Reconnection settings for a link that should stay up."""

    base_delay: float = 1.0
    backoff: float = 2.0
    max_delay: float = 30.0
    max_attempts: int = 10

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (1-based)."""
        if attempt < 1:
            return 0.0
        return min(self.base_delay * self.backoff ** (attempt - 1), self.max_delay)

    @classmethod
    def from_env(cls) -> ReconnectConfig:
        return cls(
            base_delay=_env_float("RECONNECT_DELAY", 1.0),
            backoff=_env_float("RECONNECT_BACKOFF", 2.0),
            max_delay=_env_float("RECONNECT_MAX_DELAY", 30.0),
            max_attempts=_env_int("RECONNECT_MAX_ATTEMPTS", 10),
        )


@dataclass
class CdpConfig:
    """Chrome DevTools endpoint settings."""

    host: str = "localhost"
    port: int = CDP_PORT
    command_timeout: float = 30.0
    discovery_timeout: float = 5.0
    console_buffer_size: int = 500
    capture_console: bool = True
    max_message_size: int = MAX_MESSAGE_SIZE

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> CdpConfig:
        return cls(
            host=_env("CDP_HOST", "localhost"),
            port=_env_int("CDP_PORT", CDP_PORT),
            command_timeout=_env_float("COMMAND_TIMEOUT", 30.0),
            discovery_timeout=_env_float("DISCOVERY_TIMEOUT", 5.0),
            console_buffer_size=_env_int("CONSOLE_BUFFER_SIZE", 500),
            capture_console=_env("CAPTURE_CONSOLE", "1").lower() in ("1", "true", "yes"),
            max_message_size=_env_int("MAX_MESSAGE_SIZE", MAX_MESSAGE_SIZE),
        )


@dataclass
class RelayConfig:
    """Relay server settings (the far side, next to the browser)."""

    host: str = "0.0.0.0"
    port: int = RELAY_PORT
    accept_policy: AcceptPolicy = AcceptPolicy.MULTI
    max_frame_size: int = MAX_FRAME_SIZE
    max_message_size: int = MAX_MESSAGE_SIZE
    cdp: CdpConfig = field(default_factory=CdpConfig)

    @classmethod
    def from_env(cls) -> RelayConfig:
        return cls(
            host=_env("RELAY_HOST", "0.0.0.0"),
            port=_env_int("RELAY_PORT", RELAY_PORT),
            accept_policy=AcceptPolicy(_env("ACCEPT_POLICY", AcceptPolicy.MULTI.value)),
            max_frame_size=_env_int("MAX_FRAME_SIZE", MAX_FRAME_SIZE),
            max_message_size=_env_int("MAX_MESSAGE_SIZE", MAX_MESSAGE_SIZE),
            cdp=CdpConfig.from_env(),
        )


@dataclass
class BridgeConfig:
    """Near-side bridge settings."""

    relay_url: str = f"ws://127.0.0.1:{RELAY_PORT}"
    socket_path: str = field(default_factory=default_socket_path)
    connect_timeout: float = 5.0
    max_message_size: int = MAX_MESSAGE_SIZE
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)

    @classmethod
    def from_env(cls) -> BridgeConfig:
        return cls(
            relay_url=_env("RELAY_URL", f"ws://127.0.0.1:{RELAY_PORT}"),
            socket_path=_env("SOCKET_PATH", default_socket_path()),
            connect_timeout=_env_float("CONNECT_TIMEOUT", 5.0),
            max_message_size=_env_int("MAX_MESSAGE_SIZE", MAX_MESSAGE_SIZE),
            reconnect=ReconnectConfig.from_env(),
        )
