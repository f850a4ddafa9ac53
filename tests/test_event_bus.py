"""Unit Tests for EventBus

Tests: subscribe/publish, shorthand and wildcard names, ordering, cloning,
failing callbacks, unsubscribe
"""
import pytest
from unittest.mock import Mock

from patched_sync.event_bus import EventBus
from patched_sync.events import EventKind, WILDCARD_KINDS, resolve_event_name


class TestEventNames:
    """Tests for subscription name resolution."""

    def test_full_name(self):
        assert resolve_event_name("patch:start") == (EventKind.PATCH_START,)

    def test_shorthand_means_end(self):
        """A name without a suffix means the :end kind."""
        assert resolve_event_name("get") == (EventKind.GET_END,)
        assert resolve_event_name("patch") == (EventKind.PATCH_END,)

    def test_wildcard_excludes_errors(self):
        """'*' covers exactly the start and end kinds."""
        kinds = resolve_event_name("*")

        assert set(kinds) == {
            EventKind.GET_START, EventKind.GET_END,
            EventKind.PATCH_START, EventKind.PATCH_END,
        }
        assert resolve_event_name("*:*") == WILDCARD_KINDS

    def test_enum_member_passes_through(self):
        assert resolve_event_name(EventKind.GET_ERROR) == (EventKind.GET_ERROR,)

    def test_unknown_name_raises(self):
        with pytest.raises(ValueError, match="Unknown event"):
            resolve_event_name("delete:end")


class TestEventBusBasics:
    """Tests for core EventBus functionality."""

    def test_instantiation(self):
        """A new bus has one empty list per kind."""
        bus = EventBus()

        assert set(bus._subscribers) == set(EventKind)
        assert bus.subscriber_count() == 0

    def test_subscribe_returns_id(self):
        bus = EventBus()

        sub_id = bus.subscribe('patch:end', Mock())

        assert isinstance(sub_id, str)
        assert bus.subscriber_count('patch:end') == 1

    def test_wildcard_registers_four_times(self):
        """Wildcard expands to explicit registrations at subscribe time."""
        bus = EventBus()

        bus.subscribe('*', Mock())

        assert bus.subscriber_count() == 4
        assert bus.subscriber_count('get:error') == 0
        assert bus.subscriber_count('patch:error') == 0

    def test_unsubscribe_removes_all_registrations(self):
        bus = EventBus()
        callback = Mock()
        sub_id = bus.subscribe('*', callback)

        assert bus.unsubscribe(sub_id) is True
        assert bus.subscriber_count() == 0

        bus.publish(EventKind.GET_END, {})
        callback.assert_not_called()

    def test_unsubscribe_unknown_id(self):
        assert EventBus().unsubscribe("nope") is False

    def test_clear(self):
        bus = EventBus()
        bus.subscribe('get', Mock())
        bus.subscribe('patch', Mock())

        bus.clear()

        assert bus.subscriber_count() == 0


class TestEventBusPublish:
    """Tests for event publishing."""

    def test_publish_calls_subscriber(self):
        bus = EventBus()
        callback = Mock()
        bus.subscribe('get:end', callback)

        bus.publish(EventKind.GET_END, {"a": 1})

        callback.assert_called_once_with({"a": 1})

    def test_publish_by_name(self):
        bus = EventBus()
        callback = Mock()
        bus.subscribe('get:start', callback)

        assert bus.publish('get:start') == 1
        callback.assert_called_once_with(None)

    def test_publish_in_subscription_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe('patch', lambda data: calls.append("first"))
        bus.subscribe('patch', lambda data: calls.append("second"))
        bus.subscribe('*', lambda data: calls.append("third"))

        bus.publish(EventKind.PATCH_END)

        assert calls == ["first", "second", "third"]

    def test_each_subscriber_gets_its_own_copy(self):
        """Mutations by one callback are invisible to the next and to the publisher."""
        bus = EventBus()
        data = {"items": [1, 2]}
        seen = []

        def mutate(payload):
            payload["items"].append(99)
            seen.append(payload)

        bus.subscribe('patch', mutate)
        bus.subscribe('patch', mutate)

        bus.publish(EventKind.PATCH_END, data)

        assert data == {"items": [1, 2]}
        assert seen[0] == {"items": [1, 2, 99]}
        assert seen[1] == {"items": [1, 2, 99]}
        assert seen[0] is not seen[1]

    def test_unknown_event_is_noop(self):
        bus = EventBus()
        callback = Mock()
        bus.subscribe('*', callback)

        assert bus.publish('delete:end', {}) == 0
        callback.assert_not_called()

    def test_failing_callback_does_not_stop_siblings(self, caplog):
        """A raising callback is logged and the remaining ones still run."""
        bus = EventBus()
        after = Mock()

        def boom(data):
            raise RuntimeError("subscriber failed")

        bus.subscribe('get', boom)
        bus.subscribe('get', after)

        bus.publish(EventKind.GET_END, {"a": 1})

        after.assert_called_once_with({"a": 1})
        assert "subscriber failed" in caplog.text

    def test_callback_may_unsubscribe_during_publish(self):
        bus = EventBus()
        calls = []
        sub_ids = {}

        def once(data):
            calls.append(data)
            bus.unsubscribe(sub_ids["once"])

        sub_ids["once"] = bus.subscribe('get', once)

        bus.publish(EventKind.GET_END, 1)
        bus.publish(EventKind.GET_END, 2)

        assert calls == [1]
