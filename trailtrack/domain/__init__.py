"""trailtrack Domain Layer - Core tracking models and enums."""

from .models import (
    Position,
    RoutePoint,
    SavedRoute,
    SessionState,
    SnapshotData,
    Waypoint,
    now_ms,
)

__all__ = [
    "Position",
    "RoutePoint",
    "SavedRoute",
    "SessionState",
    "SnapshotData",
    "Waypoint",
    "now_ms",
]
