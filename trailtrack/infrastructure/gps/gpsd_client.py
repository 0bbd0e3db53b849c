"""Async gpsd position source with auto-reconnect and error reporting."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, AsyncIterator, Optional

from ...domain.models import Position
from .source import (
    ErrorCallback,
    FixCallback,
    PositionError,
    PositionErrorCode,
    Subscription,
)

if TYPE_CHECKING:
    from ...config import GPSConfig

logger = logging.getLogger(__name__)


@dataclass
class GpsdSettings:
    """GPS daemon connection settings."""

    host: str = "localhost"
    port: int = 2947
    reconnect_delay: float = 5.0
    timeout: float = 10.0
    max_reconnect_attempts: int = 0  # 0 = infinite


@dataclass
class GpsdState:
    """Internal gpsd state tracking."""

    connected: bool = False
    fix_count: int = 0
    error_count: int = 0
    last_fix: Optional[datetime] = None
    satellites: int = 0


def parse_tpv(data: dict) -> Optional[Position]:
    """
    Parse a TPV (Time-Position-Velocity) report from gpsd.

    Args:
        data: JSON dict from a gpsd TPV message

    Returns:
        Position when the report carries a 2D/3D fix, None otherwise
    """
    try:
        if "lat" not in data or "lon" not in data:
            return None

        # Mode: 0=unknown, 1=no fix, 2=2D, 3=3D
        if data.get("mode", 2) < 2:
            return None

        accuracy = data.get("eph")
        if accuracy is None and "epx" in data and "epy" in data:
            accuracy = max(float(data["epx"]), float(data["epy"]))

        timestamp = None
        if data.get("time"):
            try:
                timestamp = int(datetime.fromisoformat(data["time"]).timestamp() * 1000)
            except ValueError:
                logger.debug("Unparseable TPV time: %s", data["time"])

        return Position(
            lat=float(data["lat"]),
            lng=float(data["lon"]),
            accuracy=float(accuracy) if accuracy is not None else None,
            timestamp=timestamp,
        )

    except (KeyError, ValueError, TypeError) as e:
        logger.error("TPV parse error: %s - data: %s", e, data)
        return None


class GpsdPositionSource:
    """
    Live position source backed by gpsd.

    Features:
    - Non-blocking async connection
    - Automatic reconnection on disconnect
    - Connection failures reported as POSITION_UNAVAILABLE
    - Silence longer than ``timeout`` reported as TIMEOUT

    Usage:
        source = GpsdPositionSource(GpsdSettings(host="localhost"))
        subscription = source.start(on_fix, on_error)   # inside a running loop
        ...
        subscription.cancel()
    """

    def __init__(self, settings: GpsdSettings | None = None) -> None:
        self.settings = settings or GpsdSettings()
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._running = False
        self._position: Optional[Position] = None
        self._state = GpsdState()
        self._reconnect_attempts = 0
        self._task: asyncio.Task | None = None
        self._subscription: Subscription | None = None

    @classmethod
    def from_config(cls, cfg: GPSConfig) -> GpsdPositionSource:
        return cls(
            GpsdSettings(
                host=cfg.host,
                port=cfg.port,
                reconnect_delay=cfg.reconnect_delay,
                timeout=cfg.timeout,
                max_reconnect_attempts=cfg.max_reconnect_attempts,
            )
        )

    @property
    def position(self) -> Optional[Position]:
        """Last known position."""
        return self._position

    @property
    def is_connected(self) -> bool:
        return self._state.connected

    @property
    def state(self) -> GpsdState:
        """Internal state for diagnostics."""
        return self._state

    async def connect(self) -> bool:
        """
        Connect to the gpsd daemon.

        Returns:
            True if connected successfully, False otherwise.
        """
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.settings.host, self.settings.port),
                timeout=self.settings.timeout,
            )

            # Enable JSON streaming mode
            self._writer.write(b'?WATCH={"enable":true,"json":true}\n')
            await self._writer.drain()

            self._state.connected = True
            self._reconnect_attempts = 0
            logger.info("Connected to gpsd at %s:%d", self.settings.host, self.settings.port)
            return True

        except asyncio.TimeoutError:
            logger.warning("gpsd connection timeout to %s:%d", self.settings.host, self.settings.port)
        except ConnectionRefusedError:
            logger.warning("gpsd connection refused - is gpsd running?")
        except OSError as e:
            logger.warning("gpsd connection failed: %s", e)

        self._state.error_count += 1
        return False

    async def disconnect(self) -> None:
        """Disconnect from gpsd gracefully."""
        if self._writer:
            try:
                self._writer.write(b'?WATCH={"enable":false}\n')
                await self._writer.drain()
                self._writer.close()
                await self._writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug("gpsd disconnect: %s", e)

        self._reader = None
        self._writer = None
        self._state.connected = False

    async def stream_positions(
        self, on_error: ErrorCallback | None = None
    ) -> AsyncIterator[Position]:
        """
        Async generator that yields positions as gpsd reports them.

        Handles reconnection automatically. Failures are passed to
        ``on_error`` instead of being raised.
        """
        def report(code: PositionErrorCode, message: str | None = None) -> None:
            if on_error is not None:
                on_error(PositionError.from_code(code, message))

        self._running = True

        while self._running:
            # Connect if needed
            if not self._reader:
                if not await self.connect():
                    self._reconnect_attempts += 1
                    report(PositionErrorCode.POSITION_UNAVAILABLE)

                    if (
                        self.settings.max_reconnect_attempts > 0
                        and self._reconnect_attempts >= self.settings.max_reconnect_attempts
                    ):
                        logger.error("gpsd max reconnect attempts reached, stopping")
                        break

                    await asyncio.sleep(self.settings.reconnect_delay)
                    continue

            try:
                line = await asyncio.wait_for(
                    self._reader.readline(),  # type: ignore[union-attr]
                    timeout=self.settings.timeout,
                )

                if not line:
                    raise ConnectionError("gpsd closed the connection")

                data = json.loads(line.decode("utf-8"))

                if data.get("class") == "TPV":
                    pos = parse_tpv(data)
                    if pos:
                        self._position = pos
                        self._state.fix_count += 1
                        self._state.last_fix = datetime.now(UTC)
                        yield pos

                # Satellite info
                elif data.get("class") == "SKY":
                    self._state.satellites = len(data.get("satellites", []))

            except asyncio.TimeoutError:
                logger.debug("gpsd read timeout after %.1fs", self.settings.timeout)
                report(PositionErrorCode.TIMEOUT)

            except json.JSONDecodeError as e:
                logger.warning("gpsd JSON parse error: %s", e)

            except (ConnectionError, OSError) as e:
                logger.warning("gpsd stream error: %s, reconnecting...", e)
                self._state.error_count += 1
                await self.disconnect()
                await asyncio.sleep(self.settings.reconnect_delay)

        await self.disconnect()

    # ==================== Source contract ====================

    def start(self, on_fix: FixCallback, on_error: ErrorCallback) -> Subscription:
        """Stream fixes to the callbacks from an asyncio task."""
        if self._task is not None or self._subscription is not None:
            self.stop()

        subscription = Subscription(on_fix, on_error, on_cancel=self.stop)
        self._subscription = subscription

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            subscription.deliver_error(
                PositionError.from_code(
                    PositionErrorCode.UNSUPPORTED, "gpsd source needs a running event loop."
                )
            )
            return subscription

        self._task = loop.create_task(self._run(subscription))
        return subscription

    async def _run(self, subscription: Subscription) -> None:
        try:
            async for pos in self.stream_positions(subscription.deliver_error):
                if not subscription.active:
                    break
                subscription.deliver_fix(pos)
        finally:
            await self.disconnect()

    def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        subscription, self._subscription = self._subscription, None
        if task is not None:
            task.cancel()
        if subscription is not None:
            subscription.cancel()
