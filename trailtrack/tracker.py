"""
Tracker
=======

Wires one TrackingSession to a position source and the two storage slots.

The session is single-owner: only the Tracker calls its mutating methods.
Source callbacks carry the subscription generation they were issued for,
so a fix or error delivered after ``pause()``/``stop_tracking()`` is
dropped here and never reaches the engine.
"""

from __future__ import annotations

import logging
import random
from typing import Any

from .config import TrailtrackConfig
from .core.errors import AlreadyStartedError
from .core.events import EventChannel, Topic
from .core.ingestion import IngestionPolicy, policy_from_config
from .core.session import Clock, TrackingSession
from .domain.models import Position, SavedRoute, Waypoint, now_ms
from .infrastructure.gps.gpsd_client import GpsdPositionSource
from .infrastructure.gps.simulator import GeoSimulator
from .infrastructure.gps.source import PositionError, PositionSource, Subscription
from .infrastructure.storage.kv import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from .infrastructure.storage.routes import RouteStore
from .infrastructure.storage.snapshot import SnapshotStore

logger = logging.getLogger(__name__)

SOURCE_KINDS = ("sim", "gpsd")


def build_source(
    cfg: TrailtrackConfig, kind: str = "sim", rng: random.Random | None = None
) -> PositionSource:
    """Create the position source named by ``kind``.

    ``gpsd`` falls back to the simulator when gps is disabled or in mock mode.
    """
    if kind not in SOURCE_KINDS:
        raise ValueError(f"unknown position source: {kind}")
    if kind == "gpsd" and cfg.gps.enabled and not cfg.gps.mock_mode:
        return GpsdPositionSource.from_config(cfg.gps)
    if kind == "gpsd":
        logger.info("gpsd disabled or in mock mode, using simulator")
    return GeoSimulator.from_config(cfg.simulator, rng=rng)


class Tracker:
    """
    Orchestrates tracking control, snapshots and saved routes.

    Usage:
        tracker = Tracker(GeoSimulator(), kv=SQLiteKeyValueStore("track.db"))
        tracker.start_tracking("Morning run")
        ...
        route = tracker.stop_tracking()
    """

    def __init__(
        self,
        source: PositionSource,
        *,
        kv: KeyValueStore | None = None,
        config: TrailtrackConfig | None = None,
        channel: EventChannel | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.config = config or TrailtrackConfig()
        self.source = source
        self.channel = channel or EventChannel()
        self._clock = clock

        kv = kv if kv is not None else MemoryKeyValueStore()
        storage = self.config.storage
        self.snapshots = SnapshotStore(
            kv,
            key=storage.snapshot_key,
            max_age_hours=storage.snapshot_max_age_hours,
            clock=clock,
            channel=self.channel,
        )
        self.routes = RouteStore(kv, key=storage.routes_key, channel=self.channel)

        self._session: TrackingSession | None = None
        self._subscription: Subscription | None = None
        self._generation = 0

    @classmethod
    def from_config(
        cls,
        cfg: TrailtrackConfig,
        source_kind: str = "sim",
        *,
        channel: EventChannel | None = None,
    ) -> Tracker:
        return cls(
            build_source(cfg, source_kind),
            kv=SQLiteKeyValueStore(cfg.storage.db_path),
            config=cfg,
            channel=channel,
        )

    @property
    def session(self) -> TrackingSession | None:
        return self._session

    @property
    def is_tracking(self) -> bool:
        return self._session is not None and self._session.is_tracking

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def _new_policy(self) -> IngestionPolicy:
        return policy_from_config(self.config.ingestion)

    # ==================== Tracking control ====================

    def start_tracking(self, name: str | None = None, resume: bool = False) -> TrackingSession:
        """
        Begin a session and subscribe to the position source.

        With ``resume`` a valid snapshot is restored instead of starting
        fresh; an expired or missing snapshot falls back to a new session.

        Raises:
            AlreadyStartedError: a session is already ACTIVE or PAUSED.
        """
        if self.is_tracking:
            raise AlreadyStartedError("a tracking session is already in progress")

        session = None
        if resume:
            session = self.snapshots.recover(channel=self.channel, policy=self._new_policy())
            if session is None:
                logger.info("No resumable snapshot, starting a new session")

        if session is None:
            session = TrackingSession(
                name or self.config.tracker.default_name,
                channel=self.channel,
                policy=self._new_policy(),
                clock=self._clock,
            )
            session.start()

        self._session = session
        self._subscribe()
        return session

    def pause(self) -> bool:
        if self._session is None or not self._session.pause():
            return False
        self._unsubscribe()
        return True

    def resume(self) -> bool:
        if self._session is None or not self._session.resume():
            return False
        self._subscribe()
        return True

    def stop_tracking(self, save: bool = True) -> SavedRoute | None:
        """
        Stop the session and clear the snapshot slot.

        Returns:
            The saved route, or None when nothing was saved.
        """
        self._unsubscribe()
        session = self._session
        if session is None or not session.stop():
            return None

        route = None
        if save and session.get_point_count() > 0:
            route = session.to_saved_route()
            if not self.routes.save(route):
                # Keep the points recoverable until a save succeeds
                logger.error("Route for session %s not saved, keeping snapshot", session.id)
                self.snapshots.save_snapshot(session)
                return None
        elif save:
            logger.info("Session %s has no points, not saving", session.id)

        self.snapshots.clear_snapshot()
        return route

    def discard(self) -> None:
        """Stop without saving."""
        self.stop_tracking(save=False)

    def add_waypoint(self, name: str) -> Waypoint | None:
        if self._session is None:
            return None
        return self._session.add_waypoint(name)

    # ==================== Snapshot triggers ====================

    def _snapshot(self) -> bool:
        if not self.is_tracking:
            return False
        return self.snapshots.save_snapshot(self._session)  # type: ignore[arg-type]

    def on_visibility_change(self, hidden: bool) -> bool:
        """Snapshot when the app goes to the background."""
        if not hidden:
            return False
        return self._snapshot()

    def before_unload(self) -> bool:
        return self._snapshot()

    def save_and_exit(self) -> bool:
        """Snapshot and detach from the source, leaving the session resumable."""
        saved = self._snapshot()
        self._unsubscribe()
        return saved

    # ==================== Source callbacks ====================

    def _subscribe(self) -> None:
        self._unsubscribe()
        generation = self._generation
        subscription = self.source.start(
            lambda position: self._on_fix(generation, position),
            lambda error: self._on_error(generation, error),
        )
        # An error delivered inside start() may already have stopped tracking
        if generation != self._generation:
            subscription.cancel()
            return
        self._subscription = subscription

    def _unsubscribe(self) -> None:
        self._generation += 1
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.cancel()

    def _on_fix(self, generation: int, position: Position) -> None:
        if generation != self._generation or self._session is None:
            logger.debug("Dropping late fix from a cancelled subscription")
            return
        self._session.record_point(position)

    def _on_error(self, generation: int, error: PositionError) -> None:
        if generation != self._generation:
            logger.debug("Dropping late position error %d", error.code)
            return

        logger.warning("Position error %d: %s", error.code, error.message)
        self.channel.publish(Topic.LOCATION_ERROR, error.to_dict())

        if int(error.code) in self.config.tracker.stop_on_error_codes and self.is_tracking:
            logger.warning("Stopping session after position error %d", error.code)
            self.stop_tracking(save=True)

    # ==================== Queries ====================

    def stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {"tracking": self.is_tracking, "saved_routes": self.routes.count()}
        if self._session is not None:
            stats["session"] = self._session.summary()
        return stats
