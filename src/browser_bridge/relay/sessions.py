"""Session registry for downstream connections.

Tracks every accepted session and the request-id -> session-id routes that
deliver each response to the session that asked for it.

Invariants:
- A request id is routed to at most one session at a time.
- Destroying a session purges every route it owns; a late response for one
  of those requests finds no route and is discarded.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ..config import AcceptPolicy
from ..errors import ProtocolViolation
from ..transport import FramedConnection

logger = logging.getLogger(__name__)


@dataclass
class ClientSession:
    """One accepted downstream connection."""

    session_id: str
    connection: FramedConnection
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_open(self) -> bool:
        return self.connection.is_open


class SessionRegistry:
    """Sessions plus the routes they own. Not a singleton: one per relay."""

    def __init__(self, policy: AcceptPolicy = AcceptPolicy.MULTI):
        self.policy = policy
        self._sessions: dict[str, ClientSession] = {}
        self._routes: dict[str, str] = {}

    @property
    def count(self) -> int:
        return len(self._sessions)

    @property
    def route_count(self) -> int:
        return len(self._routes)

    def get(self, session_id: str) -> ClientSession | None:
        return self._sessions.get(session_id)

    def list(self) -> list[ClientSession]:
        return list(self._sessions.values())

    def accept(self, connection: FramedConnection) -> ClientSession | None:
        """Register a new connection, or return None if the policy rejects it."""
        if self.policy == AcceptPolicy.SINGLE and self._sessions:
            logger.warning("Rejecting additional client (single-session policy)")
            return None

        session = ClientSession(session_id=f"sess_{uuid.uuid4().hex[:12]}", connection=connection)
        self._sessions[session.session_id] = session
        logger.info(f"Session {session.session_id} connected ({self.count} active)")
        return session

    def remove(self, session_id: str) -> int:
        """Destroy a session and purge its routes. Returns the number purged."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return 0

        orphaned = [rid for rid, sid in self._routes.items() if sid == session_id]
        for request_id in orphaned:
            del self._routes[request_id]

        logger.info(
            f"Session {session_id} disconnected "
            f"({len(orphaned)} in-flight route(s) purged, {self.count} active)"
        )
        return len(orphaned)

    def add_route(self, request_id: str, session_id: str) -> None:
        """Route ``request_id`` to ``session_id``.

        Raises:
            ProtocolViolation: ``request_id`` is already in flight; the existing
                route is left untouched.
        """
        owner = self._routes.get(request_id)
        if owner is not None:
            relation = "this session" if owner == session_id else "another session"
            raise ProtocolViolation(
                f"Request id {request_id} is already in flight for {relation}",
                details={"request_id": request_id},
            )
        if session_id not in self._sessions:
            raise ProtocolViolation(f"Unknown session {session_id}")
        self._routes[request_id] = session_id

    def pop_route(self, request_id: str) -> ClientSession | None:
        """Delete the route for ``request_id`` and return its live session, if any."""
        session_id = self._routes.pop(request_id, None)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def owner_of(self, request_id: str) -> str | None:
        return self._routes.get(request_id)
