"""Relay: the far-side process next to the browser."""

from .app import create_app, probe_remote
from .core import REJECT_CLOSE_CODE, RelayCore
from .handlers import ToolHandlers
from .native import serve_native_messaging
from .sessions import ClientSession, SessionRegistry

__all__ = [
    "REJECT_CLOSE_CODE",
    "ClientSession",
    "RelayCore",
    "SessionRegistry",
    "ToolHandlers",
    "create_app",
    "probe_remote",
    "serve_native_messaging",
]
