"""trailtrack - GPS tracking sessions with pause/resume and crash recovery."""

__version__ = "0.3.0"
