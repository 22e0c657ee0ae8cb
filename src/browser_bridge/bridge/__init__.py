"""Transport Bridge: the near-side process next to the local consumer."""

from .bridge import TransportBridge
from .local_server import LocalServer
from .uplink import Uplink

__all__ = [
    "LocalServer",
    "TransportBridge",
    "Uplink",
]
