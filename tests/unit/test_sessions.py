"""Unit tests for the session registry."""

from __future__ import annotations

import pytest

from browser_bridge.config import AcceptPolicy
from browser_bridge.errors import ProtocolViolation
from browser_bridge.relay import SessionRegistry


class TestSessionRegistry:
    """Tests for sessions and request routes."""

    def test_accept_assigns_unique_ids(self, make_connection) -> None:
        registry = SessionRegistry()

        first = registry.accept(make_connection())
        second = registry.accept(make_connection())

        assert first.session_id != second.session_id
        assert registry.count == 2
        assert registry.get(first.session_id) is first

    def test_single_policy_rejects_additional(self, make_connection) -> None:
        registry = SessionRegistry(AcceptPolicy.SINGLE)

        assert registry.accept(make_connection()) is not None
        assert registry.accept(make_connection()) is None
        assert registry.count == 1

    def test_single_policy_accepts_after_first_leaves(self, make_connection) -> None:
        registry = SessionRegistry(AcceptPolicy.SINGLE)
        first = registry.accept(make_connection())

        registry.remove(first.session_id)

        assert registry.accept(make_connection()) is not None

    def test_route_round_trip(self, make_connection) -> None:
        registry = SessionRegistry()
        session = registry.accept(make_connection())

        registry.add_route("r1", session.session_id)

        assert registry.owner_of("r1") == session.session_id
        assert registry.pop_route("r1") is session
        assert registry.pop_route("r1") is None

    def test_duplicate_route_rejected_without_touching_owner(self, make_connection) -> None:
        registry = SessionRegistry()
        a = registry.accept(make_connection())
        b = registry.accept(make_connection())
        registry.add_route("r1", a.session_id)

        with pytest.raises(ProtocolViolation) as exc_info:
            registry.add_route("r1", b.session_id)

        assert "another session" in str(exc_info.value)
        assert registry.owner_of("r1") == a.session_id

    def test_duplicate_route_from_same_session(self, make_connection) -> None:
        registry = SessionRegistry()
        a = registry.accept(make_connection())
        registry.add_route("r1", a.session_id)

        with pytest.raises(ProtocolViolation, match="this session"):
            registry.add_route("r1", a.session_id)

    def test_route_for_unknown_session_rejected(self) -> None:
        with pytest.raises(ProtocolViolation):
            SessionRegistry().add_route("r1", "sess_missing")

    def test_remove_purges_only_own_routes(self, make_connection) -> None:
        registry = SessionRegistry()
        a = registry.accept(make_connection())
        b = registry.accept(make_connection())
        registry.add_route("a1", a.session_id)
        registry.add_route("a2", a.session_id)
        registry.add_route("b1", b.session_id)

        assert registry.remove(a.session_id) == 2

        assert registry.pop_route("a1") is None
        assert registry.owner_of("b1") == b.session_id
        assert registry.route_count == 1

    def test_remove_unknown_is_noop(self) -> None:
        assert SessionRegistry().remove("sess_missing") == 0

    def test_route_to_removed_session_resolves_to_none(self, make_connection) -> None:
        """A route whose session vanished without a purge still yields no session."""
        registry = SessionRegistry()
        a = registry.accept(make_connection())
        registry.add_route("r1", a.session_id)
        registry._sessions.pop(a.session_id)

        assert registry.pop_route("r1") is None
