"""
Unit tests for the connection registry.
Tests: bind/resolve/unbind, per-session listing, reconnect supersede, session drop.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from connection_registry import ConnectionRegistry


def make_registry():
    registry = ConnectionRegistry()
    registry.bind("c1", "ABCD1234", "Alice", False)
    registry.bind("c2", "ABCD1234", "Bob", True)
    registry.bind("c3", "ZZZZ9999", "Alice", False)
    return registry


class TestBindResolve:
    def test_resolve_bound(self):
        registry = make_registry()
        binding = registry.resolve("c2")
        assert binding.session_code == "ABCD1234"
        assert binding.player_name == "Bob"
        assert binding.is_spectator is True

    def test_resolve_unknown(self):
        assert make_registry().resolve("nope") is None

    def test_list_by_session(self):
        registry = make_registry()
        ids = {b.connection_id for b in registry.list_by_session("ABCD1234")}
        assert ids == {"c1", "c2"}

    def test_list_unknown_session_empty(self):
        assert make_registry().list_by_session("EMPTY000") == []

    def test_same_name_in_other_session_independent(self):
        registry = make_registry()
        assert registry.connection_for("ABCD1234", "Alice") == "c1"
        assert registry.connection_for("ZZZZ9999", "Alice") == "c3"


class TestUnbind:
    def test_unbind_returns_binding(self):
        registry = make_registry()
        binding = registry.unbind("c1")
        assert binding.player_name == "Alice"
        assert registry.resolve("c1") is None

    def test_listing_reflects_unbind_immediately(self):
        registry = make_registry()
        registry.unbind("c1")
        assert [b.connection_id for b in registry.list_by_session("ABCD1234")] == ["c2"]

    def test_unbind_unknown(self):
        assert make_registry().unbind("nope") is None

    def test_last_unbind_forgets_session(self):
        registry = make_registry()
        registry.unbind("c3")
        assert registry.connection_for("ZZZZ9999", "Alice") is None
        assert registry.list_by_session("ZZZZ9999") == []


class TestReconnect:
    def test_rebinding_name_supersedes_old_connection(self):
        registry = make_registry()
        superseded = registry.bind("c9", "ABCD1234", "Alice", False)
        assert superseded == "c1"
        assert registry.resolve("c1") is None
        assert registry.connection_for("ABCD1234", "Alice") == "c9"

    def test_superseded_connection_unbind_is_harmless(self):
        registry = make_registry()
        registry.bind("c9", "ABCD1234", "Alice", False)
        assert registry.unbind("c1") is None
        assert registry.connection_for("ABCD1234", "Alice") == "c9"

    def test_fresh_bind_supersedes_nothing(self):
        registry = ConnectionRegistry()
        assert registry.bind("c1", "ABCD1234", "Alice", False) is None

    def test_connection_moves_between_sessions(self):
        registry = make_registry()
        registry.bind("c1", "ZZZZ9999", "Dave", False)
        assert registry.resolve("c1").session_code == "ZZZZ9999"
        assert registry.connection_for("ABCD1234", "Alice") is None


class TestDropSession:
    def test_drops_all_bindings(self):
        registry = make_registry()
        dropped = registry.drop_session("ABCD1234")
        assert {b.connection_id for b in dropped} == {"c1", "c2"}
        assert registry.resolve("c1") is None
        assert registry.resolve("c2") is None
        assert registry.resolve("c3") is not None
