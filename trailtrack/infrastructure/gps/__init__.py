"""GPS infrastructure - position-source contract, simulator and gpsd client."""

from .gpsd_client import GpsdPositionSource, GpsdSettings, parse_tpv
from .simulator import CITIES, PACE_PROFILES, PACE_TRANSITIONS, GeoSimulator, PaceMode
from .source import (
    ERROR_MESSAGES,
    PositionError,
    PositionErrorCode,
    PositionSource,
    Subscription,
)

__all__ = [
    "CITIES",
    "ERROR_MESSAGES",
    "PACE_PROFILES",
    "PACE_TRANSITIONS",
    "GeoSimulator",
    "GpsdPositionSource",
    "GpsdSettings",
    "PaceMode",
    "PositionError",
    "PositionErrorCode",
    "PositionSource",
    "Subscription",
    "parse_tpv",
]
