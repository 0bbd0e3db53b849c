"""
Tracking Session
================

State machine for one tracking run: IDLE -> ACTIVE <-> PAUSED -> STOPPED.

Accumulates elapsed time across pause boundaries and derives distance
and speed from the recorded points on every query.

Usage:
    session = TrackingSession("Morning walk", channel=channel)
    session.start()
    session.record_point(Position(lat=41.0, lng=29.0))
    session.pause()
    session.resume()
    session.stop()
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Callable

from ..domain.models import (
    Position,
    RoutePoint,
    SavedRoute,
    SessionState,
    Waypoint,
    now_ms,
)
from . import geo
from .errors import AlreadyStartedError, NoPositionAvailableError
from .events import EventChannel, Topic
from .ingestion import IngestionPolicy, UnthrottledPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

MS_PER_HOUR = 3_600_000
DEFAULT_NAME = "Untitled"

_TRACKING_STATES = (SessionState.ACTIVE, SessionState.PAUSED)


def format_elapsed(ms: int) -> str:
    """Format milliseconds as HH:MM:SS."""
    total_seconds = max(0, int(ms)) // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class TrackingSession:
    """
    One continuous, possibly paused, tracking run.

    The session is single-owner: only the orchestrator that created it
    calls its mutating methods. Observers listen on the EventChannel and
    receive immutable points or plain dict payloads.

    Misuse (pause when not ACTIVE, fixes after stop, ...) is ignored so a
    late GPS callback can never corrupt a finished session.
    """

    def __init__(
        self,
        name: str = DEFAULT_NAME,
        *,
        session_id: str | None = None,
        channel: EventChannel | None = None,
        policy: IngestionPolicy | None = None,
        clock: Clock = now_ms,
        created_at: datetime | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.name = name or DEFAULT_NAME
        self.created_at = created_at or datetime.now(UTC)

        self._channel = channel or EventChannel()
        self._policy = policy or UnthrottledPolicy()
        self._clock = clock

        self._state = SessionState.IDLE
        self._points: list[RoutePoint] = []
        self._waypoints: list[Waypoint] = []
        self._paused_time_accumulated = 0
        self._active_segment_start: int | None = None
        self._started_at: int | None = None

    # ==================== Restoration ====================

    @classmethod
    def restored(
        cls,
        name: str,
        points: Iterable[RoutePoint],
        waypoints: Iterable[Waypoint],
        elapsed_ms: int,
        *,
        start_time: int | None = None,
        channel: EventChannel | None = None,
        policy: IngestionPolicy | None = None,
        clock: Clock = now_ms,
    ) -> TrackingSession:
        """
        Rebuild an ACTIVE session from previously validated history.

        Points bypass the ingestion policy. Time already tracked is kept in
        the accumulator and a fresh active segment starts now.
        """
        created_at = datetime.fromtimestamp(start_time / 1000, UTC) if start_time else None
        session = cls(
            name, channel=channel, policy=policy, clock=clock, created_at=created_at
        )
        session._points = list(points)
        session._waypoints = list(waypoints)

        now = clock()
        session._paused_time_accumulated = max(0, int(elapsed_ms))
        session._active_segment_start = now
        session._started_at = start_time or now
        session._state = SessionState.ACTIVE

        logger.info(
            "Restored session %s with %d points, %s already tracked",
            session.id,
            len(session._points),
            format_elapsed(session._paused_time_accumulated),
        )
        return session

    # ==================== Accessors ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def channel(self) -> EventChannel:
        return self._channel

    @property
    def points(self) -> tuple[RoutePoint, ...]:
        return tuple(self._points)

    @property
    def waypoints(self) -> tuple[Waypoint, ...]:
        return tuple(self._waypoints)

    @property
    def paused_time_accumulated(self) -> int:
        return self._paused_time_accumulated

    @property
    def active_segment_start(self) -> int | None:
        return self._active_segment_start

    @property
    def started_at(self) -> int | None:
        """Epoch ms at which tracking first started."""
        return self._started_at

    @property
    def is_tracking(self) -> bool:
        """ACTIVE or PAUSED."""
        return self._state in _TRACKING_STATES

    @property
    def is_stopped(self) -> bool:
        return self._state is SessionState.STOPPED

    # ==================== Transitions ====================

    def start(self) -> None:
        """IDLE -> ACTIVE."""
        if self._state is not SessionState.IDLE:
            raise AlreadyStartedError(
                f"session {self.id} is already {self._state.value}"
            )

        now = self._clock()
        self._paused_time_accumulated = 0
        self._active_segment_start = now
        self._started_at = now
        self._policy.reset()
        self._state = SessionState.ACTIVE

        logger.info("Session %s started (%s)", self.id, self.name)
        self._channel.publish(
            Topic.SESSION_STARTED,
            {"id": self.id, "name": self.name, "timestamp": now},
        )

    def pause(self) -> bool:
        """ACTIVE -> PAUSED. Returns False when the call was ignored."""
        if self._state is not SessionState.ACTIVE:
            logger.debug("pause() ignored in %s state", self._state.value)
            return False

        self._close_segment()
        self._state = SessionState.PAUSED

        self._channel.publish(
            Topic.SESSION_PAUSED,
            {"id": self.id, "elapsed": self._paused_time_accumulated},
        )
        return True

    def resume(self) -> bool:
        """PAUSED -> ACTIVE. Returns False when the call was ignored."""
        if self._state is not SessionState.PAUSED:
            logger.debug("resume() ignored in %s state", self._state.value)
            return False

        self._active_segment_start = self._clock()
        self._state = SessionState.ACTIVE

        self._channel.publish(
            Topic.SESSION_RESUMED,
            {"id": self.id, "elapsed": self._paused_time_accumulated},
        )
        return True

    def stop(self) -> bool:
        """ACTIVE or PAUSED -> STOPPED. Returns False when the call was ignored."""
        if self._state not in _TRACKING_STATES:
            logger.debug("stop() ignored in %s state", self._state.value)
            return False

        if self._state is SessionState.ACTIVE:
            self._close_segment()
        self._state = SessionState.STOPPED

        logger.info(
            "Session %s stopped: %d points, %.3f km, %s",
            self.id,
            len(self._points),
            self.get_distance(),
            format_elapsed(self._paused_time_accumulated),
        )
        self._channel.publish(Topic.SESSION_STOPPED, self.summary())
        return True

    def _close_segment(self) -> None:
        if self._active_segment_start is not None:
            self._paused_time_accumulated += self._clock() - self._active_segment_start
        self._active_segment_start = None

    # ==================== Ingestion ====================

    def record_point(self, position: Position | Mapping[str, Any]) -> RoutePoint | None:
        """
        Offer a fix to the session.

        Returns:
            The stored RoutePoint, or None when the fix was rejected or the
            session is not ACTIVE/PAUSED.
        """
        if self._state not in _TRACKING_STATES:
            logger.debug("Ignoring fix in %s state", self._state.value)
            return None

        if not isinstance(position, Position):
            position = Position.model_validate(position)

        now = self._clock()
        decision = self._policy.evaluate(position, self._points, now)
        if not decision.accepted:
            logger.debug(
                "Rejected fix %.6f,%.6f: %s",
                position.lat,
                position.lng,
                decision.reason.value if decision.reason else "rejected",
            )
            self._channel.publish(
                Topic.POINT_REJECTED,
                {
                    "position": position,
                    "reason": decision.reason.value if decision.reason else None,
                },
            )
            return None

        point = RoutePoint(
            lat=position.lat,
            lng=position.lng,
            accuracy=position.accuracy,
            timestamp=position.timestamp if position.timestamp is not None else now,
        )
        self._points.append(point)

        self._channel.publish(
            Topic.POINT_ACCEPTED,
            {
                "point": point,
                "total": len(self._points),
                "distance": self.get_distance(),
                "speed": self.get_current_speed(),
            },
        )
        return point

    def add_waypoint(self, name: str) -> Waypoint | None:
        """
        Mark the last recorded point as a waypoint.

        Raises:
            NoPositionAvailableError: no point has been recorded yet.
        """
        if self._state not in _TRACKING_STATES:
            logger.debug("add_waypoint() ignored in %s state", self._state.value)
            return None

        last = self.get_last_point()
        if last is None:
            raise NoPositionAvailableError("no position recorded yet")

        waypoint = Waypoint(lat=last.lat, lng=last.lng, name=name, timestamp=self._clock())
        self._waypoints.append(waypoint)

        self._channel.publish(Topic.WAYPOINT_ADDED, waypoint)
        return waypoint

    # ==================== Derived metrics ====================

    def get_elapsed_time(self) -> int:
        """Tracked time in ms, excluding paused periods."""
        elapsed = self._paused_time_accumulated
        if self._state is SessionState.ACTIVE and self._active_segment_start is not None:
            elapsed += self._clock() - self._active_segment_start
        return elapsed

    def get_distance(self) -> float:
        """Total path length in km."""
        return geo.total_distance(self._points)

    def get_current_speed(self) -> float:
        """Speed between the last two points in km/h."""
        if len(self._points) < 2:
            return 0.0

        prev, last = self._points[-2], self._points[-1]
        hours = (last.timestamp - prev.timestamp) / MS_PER_HOUR
        if hours <= 0:
            return 0.0
        return geo.distance(prev, last) / hours

    def get_average_speed(self) -> float:
        """Total distance over tracked time in km/h."""
        hours = self.get_elapsed_time() / MS_PER_HOUR
        if hours <= 0:
            return 0.0
        return self.get_distance() / hours

    def get_point_count(self) -> int:
        return len(self._points)

    def get_last_point(self) -> RoutePoint | None:
        return self._points[-1] if self._points else None

    # ==================== Serialization ====================

    def summary(self) -> dict[str, Any]:
        """Plain-dict view of the session metrics."""
        elapsed = self.get_elapsed_time()
        return {
            "id": self.id,
            "name": self.name,
            "state": self._state.value,
            "points": len(self._points),
            "waypoints": len(self._waypoints),
            "distance_km": self.get_distance(),
            "elapsed_ms": elapsed,
            "elapsed": format_elapsed(elapsed),
            "current_speed_kmh": self.get_current_speed(),
            "average_speed_kmh": self.get_average_speed(),
        }

    def to_saved_route(self) -> SavedRoute:
        """Build the permanent-storage record for this session."""
        return SavedRoute(
            id=self.id,
            name=self.name,
            points=list(self._points),
            created_at=self.created_at,
            distance=self.get_distance(),
            duration=self.get_elapsed_time(),
            average_speed=self.get_average_speed(),
            waypoints=list(self._waypoints),
        )

    def __repr__(self) -> str:
        return (
            f"TrackingSession(id={self.id!r}, name={self.name!r}, "
            f"state={self._state.value}, points={len(self._points)})"
        )
