"""Exceptions raised by the tracking engine and its stores."""


class TrackingError(Exception):
    """Base class for trailtrack errors."""


class AlreadyStartedError(TrackingError):
    """start() was called on a session that has already left IDLE."""


class NoPositionAvailableError(TrackingError):
    """A waypoint was requested before any point was recorded."""


class RouteImportError(TrackingError, ValueError):
    """Imported route data is not a usable list of points."""
