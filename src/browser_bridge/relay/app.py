"""Relay server application.

Creates the Starlette ASGI application:
- /        - WebSocket endpoint; each connection becomes one relay session
- /health  - Health check with session count and control-link state
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket

from ..config import MAX_MESSAGE_SIZE
from ..errors import BridgeError
from ..transport import StarletteWebSocketConnection
from .core import RelayCore

logger = logging.getLogger(__name__)


async def probe_remote(core: RelayCore) -> int | None:
    """Check the browser endpoint once. Returns the tab count, or None if unreachable."""
    try:
        pages = await core.client.list_pages()
    except BridgeError as e:
        logger.warning(f"Chrome not available: {e}")
        return None
    logger.info(f"Connected to Chrome, found {len(pages)} tabs")
    return len(pages)


def create_app(
    core: RelayCore,
    *,
    max_message_size: int = MAX_MESSAGE_SIZE,
    probe: bool = True,
) -> Starlette:
    """Create the relay application around ``core``.

    Args:
        core: Relay core that owns the sessions and the browser client
        max_message_size: Largest message accepted or sent on a session
        probe: Probe the browser endpoint at startup (logging only)
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if probe:
            await probe_remote(core)
        logger.info("Relay ready")
        try:
            yield
        finally:
            await core.shutdown()
            logger.info("Relay stopped")

    async def relay_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        peer = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "?"
        logger.info(f"Client connected from {peer}")
        connection = StarletteWebSocketConnection(
            websocket, max_size=max_message_size, label=f"session@{peer}"
        )
        await core.serve(connection)

    async def health(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "sessions": core.sessions.count,
                "remote_state": core.client.state.value,
            }
        )

    app = Starlette(
        routes=[
            WebSocketRoute("/", relay_endpoint),
            Route("/health", health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.core = core
    return app
