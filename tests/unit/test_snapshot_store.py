"""
Snapshot Store Unit Tests
=========================

Tests for saving, expiring and restoring in-progress sessions.
"""

import json

import pytest

from trailtrack.core.events import Topic
from trailtrack.core.session import TrackingSession
from trailtrack.domain.models import Position, SessionState
from trailtrack.infrastructure.storage.kv import MemoryKeyValueStore
from trailtrack.infrastructure.storage.snapshot import SNAPSHOT_KEY, SnapshotStore

HOUR = 3_600_000


class FailingKV(MemoryKeyValueStore):
    def set(self, key, value):
        raise OSError("disk full")


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv, clock, channel):
    return SnapshotStore(kv, clock=clock, channel=channel)


@pytest.fixture
def session(clock, channel):
    session = TrackingSession("Evening loop", channel=channel, clock=clock)
    session.start()
    session.record_point(Position(lat=41.0, lng=29.0, accuracy=4.0))
    session.record_point(Position(lat=41.001, lng=29.0))
    session.add_waypoint("Bridge")
    clock.advance(90_000)
    return session


class TestSaveLoad:
    """Tests for the snapshot slot."""

    def test_round_trip(self, store, session, kv):
        assert store.save_snapshot(session) is True

        snapshot = store.load_snapshot()
        assert snapshot.name == "Evening loop"
        assert snapshot.points == list(session.points)
        assert snapshot.waypoints == list(session.waypoints)
        assert snapshot.elapsed_time_ms == 90_000
        assert snapshot.start_time == session.started_at

    def test_stored_json_uses_camel_case(self, store, session, kv):
        store.save_snapshot(session)
        raw = json.loads(kv.get(SNAPSHOT_KEY))
        assert {"name", "points", "waypoints", "startTime", "elapsedTime", "savedAt"} <= set(raw)

    def test_save_publishes(self, store, session, channel):
        saved = []
        channel.subscribe(Topic.SNAPSHOT_SAVED, saved.append)
        store.save_snapshot(session)
        assert saved[0]["points"] == 2

    def test_missing_slot(self, store):
        assert store.load_snapshot() is None

    def test_corrupt_slot_reads_as_none(self, store, kv):
        kv.set(SNAPSHOT_KEY, "{not json")
        assert store.load_snapshot() is None

    def test_write_failure_returns_false(self, clock, session):
        store = SnapshotStore(FailingKV(), clock=clock)
        assert store.save_snapshot(session) is False

    def test_clear(self, store, session, kv):
        store.save_snapshot(session)
        assert store.clear_snapshot() is True
        assert kv.get(SNAPSHOT_KEY) is None


class TestExpiry:
    """Snapshots expire after max_age_hours."""

    def test_exactly_24_hours_is_stale(self, store, session, clock):
        store.save_snapshot(session)
        snapshot = store.load_snapshot()

        clock.advance(24 * HOUR - 1)
        assert not store.is_stale(snapshot)
        clock.advance(1)
        assert store.is_stale(snapshot)

    def test_restore_refuses_stale(self, store, session, clock):
        store.save_snapshot(session)
        snapshot = store.load_snapshot()
        clock.advance(25 * HOUR)
        assert store.restore(snapshot) is None

    def test_custom_max_age(self, kv, clock, session):
        store = SnapshotStore(kv, clock=clock, max_age_hours=1)
        store.save_snapshot(session)
        clock.advance(HOUR)
        assert store.recover() is None


class TestRecover:
    """Tests for load + validate + restore."""

    def test_recover_restores_active_session(self, store, session, clock, kv):
        store.save_snapshot(session)
        clock.advance(10 * 60_000)

        restored = store.recover()

        assert restored.state is SessionState.ACTIVE
        assert restored.name == "Evening loop"
        assert restored.points == session.points
        assert restored.waypoints == session.waypoints
        assert restored.get_elapsed_time() == 90_000
        assert restored.get_distance() == pytest.approx(session.get_distance())
        assert kv.get(SNAPSHOT_KEY) is None

    def test_restored_session_keeps_tracking(self, store, session, clock):
        store.save_snapshot(session)
        restored = store.recover()
        clock.advance(30_000)
        restored.record_point(Position(lat=41.002, lng=29.0))
        assert restored.get_point_count() == 3
        assert restored.get_elapsed_time() == 120_000

    def test_recover_discards_stale(self, store, session, clock, kv):
        store.save_snapshot(session)
        clock.advance(48 * HOUR)
        assert store.recover() is None
        assert kv.get(SNAPSHOT_KEY) is None

    def test_recover_discards_corrupt(self, store, kv):
        kv.set(SNAPSHOT_KEY, json.dumps({"name": "x", "points": "nope"}))
        assert store.recover() is None
        assert kv.get(SNAPSHOT_KEY) is None

    def test_recover_publishes_restored(self, store, session, channel):
        restored_events = []
        channel.subscribe(Topic.SNAPSHOT_RESTORED, restored_events.append)
        store.save_snapshot(session)
        restored = store.recover()
        assert restored_events == [{"id": restored.id, "name": "Evening loop", "points": 2}]
