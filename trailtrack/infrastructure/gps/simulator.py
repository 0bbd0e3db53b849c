"""
GPS Simulator
=============

Synthetic position source for development and demos. Wanders from a start
position (or a random city) with a slowly drifting heading.

Pace is a small state machine over walking / jogging / running / resting.
Each mode has a speed range and a dwell-time range; when the dwell time
runs out the next mode is drawn from a weighted transition table.

Usage:
    simulator = GeoSimulator(interval_ms=1000)
    subscription = simulator.start(on_fix, on_error)   # inside a running loop
    ...
    subscription.cancel()
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from ...core import geo
from ...domain.models import Position, now_ms
from .source import (
    ErrorCallback,
    FixCallback,
    PositionError,
    PositionErrorCode,
    Subscription,
)

if TYPE_CHECKING:
    from ...config import SimulatorConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class City:
    name: str
    lat: float
    lng: float


CITIES = (
    City("Tokyo", 35.6762, 139.6503),
    City("London", 51.5074, -0.1278),
    City("New York", 40.7128, -74.006),
    City("Paris", 48.8566, 2.3522),
    City("Sydney", -33.8688, 151.2093),
    City("Dubai", 25.2048, 55.2708),
    City("Singapore", 1.3521, 103.8198),
    City("Barcelona", 41.3851, 2.1734),
    City("Berlin", 52.52, 13.405),
    City("Buenos Aires", -34.6037, -58.3816),
    City("Mexico City", 19.4326, -99.1332),
    City("Lima", -12.0464, -77.0428),
    City("Cairo", 30.0444, 31.2357),
    City("Mumbai", 19.076, 72.8777),
    City("Seoul", 37.5665, 126.978),
)


class PaceMode(str, Enum):
    WALKING = "walking"
    JOGGING = "jogging"
    RUNNING = "running"
    RESTING = "resting"


@dataclass(frozen=True)
class PaceProfile:
    name: str
    speed_range: tuple[float, float]  # m/s
    duration_range: tuple[float, float]  # seconds


PACE_PROFILES: dict[PaceMode, PaceProfile] = {
    PaceMode.WALKING: PaceProfile("Walking", (1.2, 1.5), (20.0, 60.0)),
    PaceMode.JOGGING: PaceProfile("Jogging", (2.2, 3.0), (15.0, 45.0)),
    PaceMode.RUNNING: PaceProfile("Running", (3.5, 5.0), (10.0, 30.0)),
    PaceMode.RESTING: PaceProfile("Resting", (0.0, 0.3), (5.0, 20.0)),
}

# Next-mode weights; a mode never transitions to itself
PACE_TRANSITIONS: dict[PaceMode, dict[PaceMode, float]] = {
    PaceMode.WALKING: {PaceMode.JOGGING: 0.45, PaceMode.RUNNING: 0.15, PaceMode.RESTING: 0.40},
    PaceMode.JOGGING: {PaceMode.WALKING: 0.50, PaceMode.RUNNING: 0.30, PaceMode.RESTING: 0.20},
    PaceMode.RUNNING: {PaceMode.JOGGING: 0.60, PaceMode.WALKING: 0.30, PaceMode.RESTING: 0.10},
    PaceMode.RESTING: {PaceMode.WALKING: 0.80, PaceMode.JOGGING: 0.20},
}


class GeoSimulator:
    """
    Simulated position source.

    ``step()`` advances one tick synchronously; ``start()`` drives ticks from
    an asyncio task every ``interval_ms``.
    """

    def __init__(
        self,
        start_position: Position | None = None,
        *,
        interval_ms: int = 1000,
        speed: float = 1.4,
        direction_variance: float = 0.3,
        accuracy: float = 10.0,
        dynamic_pace: bool = True,
        rng: random.Random | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock
        self.interval_ms = interval_ms
        self.direction_variance = direction_variance
        self.accuracy = accuracy

        if start_position is not None:
            self._city = City("Custom", start_position.lat, start_position.lng)
        else:
            self._city = self._rng.choice(CITIES)
        self._lat = self._city.lat
        self._lng = self._city.lng
        self._direction = self._rng.random() * 2 * math.pi  # radians

        self._dynamic_pace = dynamic_pace
        self._mode = PaceMode.WALKING
        self._speed = speed
        self._mode_remaining_s = 0.0
        if dynamic_pace:
            self._enter_mode(PaceMode.WALKING)

        self._task: asyncio.Task | None = None
        self._subscription: Subscription | None = None

    @classmethod
    def from_config(
        cls, cfg: SimulatorConfig, rng: random.Random | None = None
    ) -> GeoSimulator:
        start = None
        if cfg.start_lat is not None and cfg.start_lng is not None:
            start = Position(lat=cfg.start_lat, lng=cfg.start_lng)
        return cls(
            start,
            interval_ms=cfg.interval_ms,
            speed=cfg.speed,
            direction_variance=cfg.direction_variance,
            accuracy=cfg.accuracy,
            dynamic_pace=cfg.dynamic_pace,
            rng=rng,
        )

    # ==================== Pace state machine ====================

    def _enter_mode(self, mode: PaceMode) -> None:
        profile = PACE_PROFILES[mode]
        self._mode = mode
        self._speed = self._rng.uniform(*profile.speed_range)
        self._mode_remaining_s = self._rng.uniform(*profile.duration_range)
        logger.debug("Pace -> %s at %.2f m/s", mode.value, self._speed)

    def _next_mode(self) -> PaceMode:
        weights = PACE_TRANSITIONS[self._mode]
        return self._rng.choices(list(weights), weights=list(weights.values()))[0]

    def _advance_pace(self, dt_s: float) -> None:
        if not self._dynamic_pace:
            return
        self._mode_remaining_s -= dt_s
        if self._mode_remaining_s <= 0:
            self._enter_mode(self._next_mode())

    def set_speed(self, meters_per_second: float) -> None:
        """Fix the speed and turn dynamic pace off."""
        self._speed = meters_per_second
        self._dynamic_pace = False

    def set_dynamic_pace(self, enabled: bool) -> None:
        if enabled and not self._dynamic_pace:
            self._dynamic_pace = True
            self._enter_mode(self._mode)
        elif not enabled:
            self._dynamic_pace = False

    @property
    def dynamic_pace(self) -> bool:
        return self._dynamic_pace

    def get_current_pace_info(self) -> dict:
        return {
            "mode": self._mode.value,
            "name": PACE_PROFILES[self._mode].name,
            "speed": self._speed,
            "speed_kmh": round(self._speed * 3.6, 2),
        }

    # ==================== Movement ====================

    @property
    def selected_city(self) -> City:
        return self._city

    @property
    def start_position(self) -> Position:
        return Position(lat=self._city.lat, lng=self._city.lng)

    def get_current_position(self) -> Position:
        return Position(lat=self._lat, lng=self._lng)

    def current_fix(self) -> Position:
        """Fix for the current position with simulated accuracy."""
        return Position(
            lat=self._lat,
            lng=self._lng,
            accuracy=self.accuracy + self._rng.random() * 5,
            timestamp=self._clock(),
        )

    def step(self) -> Position:
        """Advance one tick and return the new fix."""
        dt_s = self.interval_ms / 1000
        self._advance_pace(dt_s)

        # Natural turns
        self._direction += (self._rng.random() - 0.5) * 2 * self.direction_variance

        self._lat, self._lng = geo.destination(
            self._lat, self._lng, math.degrees(self._direction), self._speed * dt_s
        )
        return self.current_fix()

    # ==================== Source contract ====================

    def start(self, on_fix: FixCallback, on_error: ErrorCallback) -> Subscription:
        """
        Emit the current fix now, then one fix per interval.

        Must be called from inside a running event loop; otherwise the
        subscriber receives an UNSUPPORTED error.
        """
        if self._task is not None or self._subscription is not None:
            self.stop()

        subscription = Subscription(on_fix, on_error, on_cancel=self.stop)
        self._subscription = subscription

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            subscription.deliver_error(
                PositionError.from_code(
                    PositionErrorCode.UNSUPPORTED, "Simulator needs a running event loop."
                )
            )
            return subscription

        subscription.deliver_fix(self.current_fix())
        if subscription.active:
            self._task = loop.create_task(self._run(subscription))
            logger.info("GeoSimulator started near %s", self._city.name)
        return subscription

    async def _run(self, subscription: Subscription) -> None:
        interval_s = self.interval_ms / 1000
        while subscription.active:
            await asyncio.sleep(interval_s)
            if not subscription.active:
                break
            subscription.deliver_fix(self.step())

    def stop(self) -> None:
        task, self._task = self._task, None
        subscription, self._subscription = self._subscription, None
        if task is not None:
            task.cancel()
            logger.info("GeoSimulator stopped")
        if subscription is not None:
            subscription.cancel()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
