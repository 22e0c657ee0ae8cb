"""Chrome DevTools Protocol client."""

from .client import Connector, PendingCommand, RemoteCommandClient
from .types import PAGE_TYPE, ConsoleEntry, Target

__all__ = [
    "Connector",
    "ConsoleEntry",
    "PAGE_TYPE",
    "PendingCommand",
    "RemoteCommandClient",
    "Target",
]
