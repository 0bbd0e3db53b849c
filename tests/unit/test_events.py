"""
Event Channel Unit Tests
========================

Tests for the synchronous publish/subscribe channel.
"""

from trailtrack.core.events import EventChannel, Topic


class TestSubscribePublish:
    """Tests for delivery and subscription management."""

    def test_delivers_payload_in_subscription_order(self):
        channel = EventChannel()
        calls = []
        channel.subscribe(Topic.SESSION_STARTED, lambda p: calls.append(("a", p)))
        channel.subscribe(Topic.SESSION_STARTED, lambda p: calls.append(("b", p)))

        event = channel.publish(Topic.SESSION_STARTED, {"id": "s1"})

        assert calls == [("a", {"id": "s1"}), ("b", {"id": "s1"})]
        assert event.delivered == 2

    def test_string_and_enum_topics_are_equivalent(self):
        channel = EventChannel()
        received = []
        channel.subscribe("point:accepted", received.append)
        channel.publish(Topic.POINT_ACCEPTED, 1)
        assert received == [1]

    def test_unsubscribe_is_idempotent(self):
        channel = EventChannel()
        received = []
        unsubscribe = channel.subscribe(Topic.SESSION_STOPPED, received.append)

        unsubscribe()
        unsubscribe()
        channel.publish(Topic.SESSION_STOPPED, "x")

        assert received == []
        assert not channel.has_subscribers(Topic.SESSION_STOPPED)

    def test_unsubscribe_by_handler(self):
        channel = EventChannel()
        received = []
        channel.subscribe(Topic.SESSION_PAUSED, received.append)

        assert channel.unsubscribe(Topic.SESSION_PAUSED, received.append) is True
        assert channel.unsubscribe(Topic.SESSION_PAUSED, received.append) is False

    def test_once_handler_runs_once(self):
        channel = EventChannel()
        received = []
        channel.subscribe_once(Topic.WAYPOINT_ADDED, received.append)

        channel.publish(Topic.WAYPOINT_ADDED, 1)
        channel.publish(Topic.WAYPOINT_ADDED, 2)

        assert received == [1]
        assert channel.listener_count(Topic.WAYPOINT_ADDED) == 0

    def test_decorator_subscribes(self):
        channel = EventChannel()
        received = []

        @channel.on(Topic.ROUTE_SAVED)
        def saved(payload):
            received.append(payload)

        channel.publish(Topic.ROUTE_SAVED, "r1")
        assert received == ["r1"]

    def test_handler_removed_during_publish_is_skipped(self):
        channel = EventChannel()
        received = []
        unsubscribe_second = None

        def first(payload):
            unsubscribe_second()

        channel.subscribe(Topic.POINT_ACCEPTED, first)
        unsubscribe_second = channel.subscribe(Topic.POINT_ACCEPTED, received.append)

        channel.publish(Topic.POINT_ACCEPTED, 1)
        assert received == []

    def test_publish_without_subscribers(self):
        event = EventChannel().publish(Topic.ROUTES_CLEARED)
        assert event.delivered == 0


class TestErrorIsolation:
    """A failing handler must not affect the others."""

    def test_raising_handler_is_logged_and_skipped(self, caplog):
        channel = EventChannel()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        channel.subscribe(Topic.LOCATION_ERROR, broken)
        channel.subscribe(Topic.LOCATION_ERROR, received.append)

        event = channel.publish(Topic.LOCATION_ERROR, {"code": 2})

        assert received == [{"code": 2}]
        assert event.delivered == 1
        assert channel.get_stats()["handler_errors"] == 1
        assert "boom" in caplog.text


class TestHistory:
    """Tests for publish history and housekeeping."""

    def test_history_is_bounded(self):
        channel = EventChannel(max_history=3)
        for i in range(5):
            channel.publish(Topic.POINT_ACCEPTED, i)

        history = channel.get_history()
        assert [e.payload for e in history] == [2, 3, 4]

    def test_history_filter_and_limit(self):
        channel = EventChannel()
        channel.publish(Topic.SESSION_STARTED, "s")
        channel.publish(Topic.POINT_ACCEPTED, 1)
        channel.publish(Topic.POINT_ACCEPTED, 2)

        assert [e.payload for e in channel.get_history(Topic.POINT_ACCEPTED)] == [1, 2]
        assert [e.payload for e in channel.get_history(limit=1)] == [2]

    def test_clear_topic(self):
        channel = EventChannel()
        channel.subscribe(Topic.SESSION_STARTED, print)
        channel.subscribe(Topic.SESSION_STOPPED, print)

        channel.clear(Topic.SESSION_STARTED)
        assert channel.topics() == ["session:stopped"]

        channel.clear()
        assert channel.topics() == []
