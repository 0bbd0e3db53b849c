"""Position source contract shared by the simulator and the gpsd client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Protocol

if TYPE_CHECKING:
    from ...domain.models import Position

logger = logging.getLogger(__name__)


class PositionErrorCode(IntEnum):
    """Geolocation error taxonomy (1-3 follow the browser API)."""

    UNSUPPORTED = 0
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


ERROR_MESSAGES = {
    PositionErrorCode.UNSUPPORTED: "Geolocation is not supported on this device.",
    PositionErrorCode.PERMISSION_DENIED: "Location permission denied. Please allow access to your location.",
    PositionErrorCode.POSITION_UNAVAILABLE: "Position unavailable. Check your GPS connection.",
    PositionErrorCode.TIMEOUT: "Timed out waiting for a position. Try again.",
}


@dataclass(frozen=True)
class PositionError:
    """Error reported by a position source."""

    code: PositionErrorCode
    message: str

    @classmethod
    def from_code(cls, code: int, message: str | None = None) -> PositionError:
        code = PositionErrorCode(code)
        return cls(code=code, message=message or ERROR_MESSAGES[code])

    def to_dict(self) -> dict:
        return {"code": int(self.code), "message": self.message}


FixCallback = Callable[["Position"], None]
ErrorCallback = Callable[[PositionError], None]


class Subscription:
    """
    Handle returned by ``PositionSource.start``.

    ``cancel()`` is idempotent. Once it returns, nothing more is delivered
    to the callbacks, even if the source still has a fix in flight.
    """

    def __init__(
        self,
        on_fix: FixCallback,
        on_error: ErrorCallback,
        on_cancel: Callable[[], None] | None = None,
    ) -> None:
        self._on_fix = on_fix
        self._on_error = on_error
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled

    def deliver_fix(self, position: Position) -> bool:
        """Pass a fix to the subscriber. Returns False once cancelled."""
        if self._cancelled:
            return False
        try:
            self._on_fix(position)
        except Exception as e:
            logger.error("Position callback error: %s", e)
        return True

    def deliver_error(self, error: PositionError) -> bool:
        if self._cancelled:
            return False
        try:
            self._on_error(error)
        except Exception as e:
            logger.error("Position error callback failed: %s", e)
        return True

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class PositionSource(Protocol):
    """Anything that streams fixes to a pair of callbacks."""

    def start(self, on_fix: FixCallback, on_error: ErrorCallback) -> Subscription: ...
