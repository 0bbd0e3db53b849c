"""
Session Snapshot Store
~~~~~~~~~~~~~~~~~~~~~~

Best-effort save/restore of an in-progress session so it survives the
process being backgrounded, closed or killed.

A single slot holds the latest snapshot (last writer wins). Snapshots
older than ``max_age_hours`` are expired and never restored.

Example:
    >>> store = SnapshotStore(SQLiteKeyValueStore("~/.trailtrack/trailtrack.db"))
    >>> store.save_snapshot(session)          # on visibility loss / unload
    >>> session = store.recover()             # on next launch with --resume
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ...core.events import EventChannel, Topic
from ...core.session import Clock, TrackingSession
from ...domain.models import SnapshotData, now_ms

if TYPE_CHECKING:
    from ...core.ingestion import IngestionPolicy
    from .kv import KeyValueStore

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "tracking_session_snapshot"
DEFAULT_MAX_AGE_HOURS = 24.0


class SnapshotStore:
    """
    Persists one session snapshot under a fixed key.

    Storage and parse failures are logged and reported as False / None;
    losing a snapshot is preferable to interrupting the live session.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        key: str = SNAPSHOT_KEY,
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
        clock: Clock = now_ms,
        channel: EventChannel | None = None,
    ) -> None:
        self._kv = kv
        self.key = key
        self.max_age_hours = max_age_hours
        self._clock = clock
        self._channel = channel

    @property
    def max_age_ms(self) -> int:
        return int(self.max_age_hours * 3_600_000)

    # ==================== Slot I/O ====================

    def save_snapshot(self, session: TrackingSession) -> bool:
        """Write the session's current state to the slot."""
        try:
            snapshot = SnapshotData(
                name=session.name,
                points=list(session.points),
                waypoints=list(session.waypoints),
                start_time=session.started_at or 0,
                elapsed_time_ms=session.get_elapsed_time(),
                saved_at=self._clock(),
            )
            self._kv.set(self.key, snapshot.model_dump_json(by_alias=True, exclude_none=True))
        except Exception as e:
            logger.error("Failed to save session snapshot: %s", e)
            return False

        logger.debug(
            "Saved snapshot of %s (%d points)", session.id, len(snapshot.points)
        )
        self._publish(
            Topic.SNAPSHOT_SAVED,
            {"name": snapshot.name, "points": len(snapshot.points), "savedAt": snapshot.saved_at},
        )
        return True

    def _read(self) -> str | None:
        try:
            return self._kv.get(self.key)
        except Exception as e:
            logger.error("Failed to read session snapshot: %s", e)
            return None

    @staticmethod
    def _parse(raw: str) -> SnapshotData | None:
        try:
            return SnapshotData.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable session snapshot: %s", e)
            return None

    def load_snapshot(self) -> SnapshotData | None:
        """Read the slot. None when absent or corrupt."""
        raw = self._read()
        if raw is None:
            return None
        return self._parse(raw)

    def clear_snapshot(self) -> bool:
        """Remove the slot."""
        try:
            self._kv.delete(self.key)
        except Exception as e:
            logger.error("Failed to clear session snapshot: %s", e)
            return False

        self._publish(Topic.SNAPSHOT_CLEARED, {"key": self.key})
        return True

    # ==================== Recovery ====================

    def is_stale(self, snapshot: SnapshotData) -> bool:
        """True once the snapshot has reached ``max_age_hours``."""
        return self._clock() - snapshot.saved_at >= self.max_age_ms

    def restore(
        self,
        snapshot: SnapshotData,
        *,
        channel: EventChannel | None = None,
        policy: IngestionPolicy | None = None,
    ) -> TrackingSession | None:
        """
        Rebuild an ACTIVE session from ``snapshot``.

        Returns:
            The restored session, or None when the snapshot is expired.
        """
        if self.is_stale(snapshot):
            logger.info(
                "Snapshot saved at %d is older than %.1fh, not restoring",
                snapshot.saved_at,
                self.max_age_hours,
            )
            return None

        session = TrackingSession.restored(
            snapshot.name,
            snapshot.points,
            snapshot.waypoints,
            snapshot.elapsed_time_ms,
            start_time=snapshot.start_time or None,
            channel=channel or self._channel,
            policy=policy,
            clock=self._clock,
        )
        self._publish(
            Topic.SNAPSHOT_RESTORED,
            {"id": session.id, "name": session.name, "points": session.get_point_count()},
        )
        return session

    def recover(
        self,
        *,
        channel: EventChannel | None = None,
        policy: IngestionPolicy | None = None,
    ) -> TrackingSession | None:
        """
        Load, validate and restore the slot in one step.

        Expired or corrupt snapshots are discarded. A successful restore
        also clears the slot.
        """
        raw = self._read()
        if raw is None:
            return None

        snapshot = self._parse(raw)
        if snapshot is None:
            self.clear_snapshot()
            return None

        session = self.restore(snapshot, channel=channel, policy=policy)
        self.clear_snapshot()
        return session

    def _publish(self, topic: Topic, payload: dict) -> None:
        if self._channel is not None:
            self._channel.publish(topic, payload)
