"""Tests for the dispatch registry."""

import pytest

from sports_events.events.registry import EventDispatchRegistry, build_registry

from conftest import RecordingHandler


class TestEventDispatchRegistry:
    """Resolution order and can_handle filtering."""

    def test_resolve_in_registration_order(self):
        """Handlers come back in the order they were registered."""
        registry = EventDispatchRegistry()
        first, second = RecordingHandler("first"), RecordingHandler("second")
        registry.register(first)
        registry.register(second)
        assert registry.resolve("match.completed") == [first, second]

    def test_unknown_type_resolves_empty(self):
        """No handlers is an empty list, not an error."""
        registry = EventDispatchRegistry()
        registry.register(RecordingHandler("first"))
        assert registry.resolve("tournament.created") == []

    def test_can_handle_false_is_filtered(self):
        """A handler refusing the type is dropped; the next one is used."""
        registry = EventDispatchRegistry()
        refusing = RecordingHandler("h1", accepts=False)
        accepting = RecordingHandler("h2")
        registry.register(refusing, ["match.completed"])
        registry.register(accepting, ["match.completed"])
        assert registry.resolve("match.completed") == [accepting]

    def test_double_registration_ignored(self):
        """The same handler instance appears once per type."""
        registry = EventDispatchRegistry()
        handler = RecordingHandler("h")
        registry.register(handler)
        registry.register(handler)
        assert registry.resolve("match.completed") == [handler]

    def test_duplicate_name_rejected(self):
        """Two instances sharing a name would share ledger entries."""
        registry = EventDispatchRegistry()
        registry.register(RecordingHandler("h", types=("match.completed",)))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(RecordingHandler("h", types=("standings.updated",)))
        assert registry.registered_types() == ["match.completed"]

    def test_same_instance_for_more_types_allowed(self):
        registry = EventDispatchRegistry()
        handler = RecordingHandler("h", types=("match.completed", "standings.updated"))
        registry.register(handler, ["match.completed"])
        registry.register(handler, ["standings.updated"])
        assert registry.describe() == {"match.completed": ["h"], "standings.updated": ["h"]}

    def test_handler_without_types_not_registered(self):
        registry = EventDispatchRegistry()
        registry.register(RecordingHandler("empty", types=()))
        assert registry.registered_types() == []


class TestBuildRegistry:
    """Static handler tables."""

    def test_table_order_is_preserved(self):
        a, b = RecordingHandler("a"), RecordingHandler("b")
        registry = build_registry({"match.completed": ["b", "a"]}, {"a": a, "b": b})
        assert registry.resolve("match.completed") == [b, a]
        assert registry.describe() == {"match.completed": ["b", "a"]}

    def test_keys_resolving_to_same_name_rejected(self):
        with pytest.raises(ValueError):
            build_registry(
                {"match.completed": ["x", "y"]},
                {"x": RecordingHandler("dup"), "y": RecordingHandler("dup")},
            )

    def test_unknown_key_skipped(self):
        """A typo in configuration does not raise."""
        a = RecordingHandler("a")
        registry = build_registry({"match.completed": ["missing", "a"]}, {"a": a})
        assert registry.resolve("match.completed") == [a]
