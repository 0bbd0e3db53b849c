"""trailtrack Core - Tracking engine, event channel, ingestion and geo math."""

from . import geo
from .errors import (
    AlreadyStartedError,
    NoPositionAvailableError,
    RouteImportError,
    TrackingError,
)
from .events import Event, EventChannel, Topic
from .ingestion import (
    IngestionDecision,
    IngestionPolicy,
    PointIngestionPolicy,
    RejectReason,
    UnthrottledPolicy,
    policy_from_config,
)
from .session import TrackingSession, format_elapsed

__all__ = [
    "AlreadyStartedError",
    # Events
    "Event",
    "EventChannel",
    # Ingestion
    "IngestionDecision",
    "IngestionPolicy",
    "NoPositionAvailableError",
    "PointIngestionPolicy",
    "RejectReason",
    "RouteImportError",
    "Topic",
    # Session
    "TrackingError",
    "TrackingSession",
    "UnthrottledPolicy",
    "format_elapsed",
    "geo",
    "policy_from_config",
]
