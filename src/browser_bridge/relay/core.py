"""Relay Core.

Accepts downstream sessions, routes every ``to-chrome`` request to the tool
dispatch table and delivers the ``from-chrome`` response to the session that
sent the request, and to no other.

Request lifecycle:
    1. Envelope arrives on session S with correlation id R
    2. R already in flight -> ProtocolViolation back to S, nothing else changes
    3. Route R -> S is recorded; the tool runs in its own task
    4. On completion the route is popped; if S is gone the response is dropped

Tool execution is never cancelled when its session disconnects: the result
simply finds no route at step 4.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..cdp import RemoteCommandClient
from ..config import AcceptPolicy
from ..errors import BridgeError, ParseError, ProtocolViolation, SizeExceeded
from ..protocol import Direction, Envelope, ToolCall
from ..transport import FramedConnection
from .handlers import ToolHandlers
from .sessions import ClientSession, SessionRegistry

logger = logging.getLogger(__name__)

# WebSocket close code used when the accept policy refuses a client
REJECT_CLOSE_CODE = 4000
REJECT_CLOSE_REASON = "Only one client allowed"


class RelayCore:
    """Session routing on top of one Remote Command Client."""

    def __init__(
        self,
        client: RemoteCommandClient,
        *,
        policy: AcceptPolicy = AcceptPolicy.MULTI,
        handlers: ToolHandlers | None = None,
    ):
        self.client = client
        self.sessions = SessionRegistry(policy)
        self.handlers = handlers or ToolHandlers(client)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def accept(self, connection: FramedConnection) -> ClientSession | None:
        """Register ``connection`` as a session and wire its handlers.

        Returns None (after closing the connection) if the accept policy
        rejects it.
        """
        session = self.sessions.accept(connection)
        if session is None:
            await connection.close(REJECT_CLOSE_CODE, REJECT_CLOSE_REASON)
            return None

        async def on_message(message: Any) -> None:
            await self.handle_message(session, message)

        async def on_close() -> None:
            self.sessions.remove(session.session_id)

        async def on_error(error: Exception) -> None:
            logger.warning(f"Session {session.session_id} error: {error}")

        connection.set_handlers(on_message=on_message, on_close=on_close, on_error=on_error)
        return session

    async def serve(self, connection: FramedConnection) -> None:
        """Accept ``connection`` and run its read loop until it closes."""
        session = await self.accept(connection)
        if session is not None:
            await connection.run()

    async def handle_message(self, session: ClientSession, message: Any) -> None:
        """Entry point for one decoded inbound message from ``session``."""
        try:
            envelope = Envelope.from_wire(message)
        except ParseError as e:
            if session.connection.on_error is not None:
                await session.connection.on_error(e)
            else:
                logger.warning(f"Session {session.session_id} sent an invalid envelope: {e}")
            request_id = e.details.get("id")
            if request_id:
                await self._send(session, Envelope.response(request_id, error=e.to_payload()))
            return

        if envelope.direction != Direction.TO_REMOTE:
            logger.warning(
                f"Dropping envelope {envelope.id} with unexpected direction {envelope.direction.value}"
            )
            return

        await self.submit(session, envelope)

    async def submit(self, session: ClientSession, envelope: Envelope) -> None:
        """Route a request envelope and start executing it."""
        request_id = envelope.id
        try:
            self.sessions.add_route(request_id, session.session_id)
        except ProtocolViolation as e:
            logger.warning(f"Rejecting request from {session.session_id}: {e}")
            # Answer the offender directly; the live route belongs to the other request
            await self._send(session, Envelope.response(request_id, error=e.to_payload()))
            return

        task = asyncio.create_task(self._execute(request_id, envelope.payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, request_id: str, payload: Any) -> None:
        rpc_id = payload.get("id") if isinstance(payload, dict) else None
        tool_name = "?"
        try:
            call = ToolCall.from_payload(payload)
            tool_name = call.tool_name
            result = await self.handlers.dispatch(call.tool_name, call.arguments)
            response = Envelope.response(request_id, result=result, echo_id=rpc_id)
            logger.debug(f"Tool {tool_name} completed for {request_id}")
        except BridgeError as e:
            logger.error(f"Tool {tool_name} failed for {request_id}: {e}")
            response = Envelope.response(request_id, error=e.to_payload(), echo_id=rpc_id)
        except Exception as e:
            logger.exception(f"Tool {tool_name} crashed for {request_id}")
            error = BridgeError(str(e) or type(e).__name__)
            response = Envelope.response(request_id, error=error.to_payload(), echo_id=rpc_id)

        await self._deliver(request_id, response)

    async def _deliver(self, request_id: str, response: Envelope) -> None:
        session = self.sessions.pop_route(request_id)
        if session is None:
            logger.warning(f"Discarding response for {request_id}: requesting session is gone")
            return

        try:
            await session.connection.send(response.to_wire())
        except SizeExceeded as e:
            logger.error(f"Response for {request_id} too large: {e}")
            error = Envelope.response(
                request_id, error=e.to_payload(), echo_id=response.payload.get("id")
            )
            await self._send(session, error)
        except BridgeError as e:
            logger.warning(f"Could not deliver response for {request_id}: {e}")

    async def _send(self, session: ClientSession, envelope: Envelope) -> None:
        try:
            await session.connection.send(envelope.to_wire())
        except BridgeError as e:
            logger.warning(f"Could not send to session {session.session_id}: {e}")

    async def shutdown(self) -> None:
        """Close every session, cancel running tools, close the client."""
        for session in self.sessions.list():
            await session.connection.close(1001, "Relay shutting down")
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.client.close()
