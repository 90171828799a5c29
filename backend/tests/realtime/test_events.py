"""Tests for EventBus."""

from unittest.mock import MagicMock

from app.realtime.events import EventBus


class TestEventBus:
    """Unit tests for the synchronous publish/subscribe registry."""

    def test_emit_in_registration_order(self):
        """Test that subscribers are called in the order they registered."""
        bus = EventBus()
        calls = []
        bus.subscribe("tick", lambda p: calls.append(("a", p)))
        bus.subscribe("tick", lambda p: calls.append(("b", p)))

        delivered = bus.emit("tick", 1)

        assert delivered == 2
        assert calls == [("a", 1), ("b", 1)]

    def test_emit_without_subscribers(self):
        """Test that emitting to nobody is a no-op."""
        bus = EventBus()
        assert bus.emit("nothing", {"x": 1}) == 0

    def test_failing_subscriber_isolated(self):
        """Test that one raising subscriber does not starve the others."""
        bus = EventBus()
        after = MagicMock()
        bus.subscribe("tick", MagicMock(side_effect=RuntimeError("boom")))
        bus.subscribe("tick", after)

        delivered = bus.emit("tick", "payload")

        assert delivered == 1
        after.assert_called_once_with("payload")

    def test_unsubscribe_handle_is_idempotent(self):
        """Test that the returned handle can be called repeatedly."""
        bus = EventBus()
        callback = MagicMock()
        unsubscribe = bus.subscribe("tick", callback)

        unsubscribe()
        unsubscribe()
        bus.emit("tick")

        callback.assert_not_called()
        assert len(bus) == 0

    def test_handle_removes_only_its_own_registration(self):
        """Test that a repeated handle call leaves a second registration of the same callback."""
        bus = EventBus()
        received = []
        first = bus.subscribe("tick", received.append)
        bus.subscribe("tick", received.append)

        first()
        first()
        bus.emit("tick", 1)

        assert received == [1]
        assert bus.subscriber_counts() == {"tick": 1}

    def test_unsubscribe_by_callback_removes_one(self):
        """Test that unsubscribe(event, callback) removes a single registration."""
        bus = EventBus()
        callback = MagicMock()
        bus.subscribe("tick", callback)
        bus.subscribe("tick", callback)

        bus.unsubscribe("tick", callback)
        bus.emit("tick", 1)

        callback.assert_called_once_with(1)

    def test_unsubscribe_unknown_is_noop(self):
        """Test that removing a callback that was never added does not raise."""
        bus = EventBus()
        bus.unsubscribe("tick", MagicMock())

    def test_unsubscribe_during_emit(self):
        """Test that a callback can unsubscribe itself while being delivered."""
        bus = EventBus()
        second = MagicMock()
        handles = {}

        def first(payload):
            handles["first"]()

        handles["first"] = bus.subscribe("tick", first)
        bus.subscribe("tick", second)

        assert bus.emit("tick", 1) == 2
        assert bus.emit("tick", 2) == 1
        assert second.call_count == 2

    def test_subscriber_counts_and_clear(self):
        """Test introspection and clearing."""
        bus = EventBus()
        bus.subscribe("a", MagicMock())
        bus.subscribe("a", MagicMock())
        bus.subscribe("b", MagicMock())

        assert bus.subscriber_counts() == {"a": 2, "b": 1}
        assert len(bus) == 3

        bus.clear()
        assert bus.subscriber_counts() == {}
