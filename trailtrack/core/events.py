"""
trailtrack Event Channel - Synchronous Pub/Sub
===============================================

Decouples the tracking engine from its observers (renderers, stats
displays, persistence triggers).

Features:
- Named topics, any number of handlers per topic
- Handlers run in subscription order, on the publisher's thread
- One-time handlers
- Publish history for debugging
- Handler errors are logged, never propagated to the publisher

Usage:
    channel = EventChannel()

    @channel.on(Topic.POINT_ACCEPTED)
    def handle_point(payload):
        print(f"Point #{payload['total']}")

    unsubscribe = channel.subscribe("session:stopped", print)
    channel.publish(Topic.SESSION_STOPPED, {"id": "..."})
    unsubscribe()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, TypeAlias

logger = logging.getLogger(__name__)

# Type aliases
Handler: TypeAlias = Callable[[Any], None]
Unsubscribe: TypeAlias = Callable[[], None]


class Topic(str, Enum):
    """Topics published by trailtrack components."""

    # Session lifecycle
    SESSION_STARTED = "session:started"
    SESSION_PAUSED = "session:paused"
    SESSION_RESUMED = "session:resumed"
    SESSION_STOPPED = "session:stopped"

    # Ingestion
    POINT_ACCEPTED = "point:accepted"
    POINT_REJECTED = "point:rejected"
    WAYPOINT_ADDED = "waypoint:added"

    # Position source
    LOCATION_ERROR = "location:error"

    # Snapshot slot
    SNAPSHOT_SAVED = "snapshot:saved"
    SNAPSHOT_RESTORED = "snapshot:restored"
    SNAPSHOT_CLEARED = "snapshot:cleared"

    # Saved routes
    ROUTE_SAVED = "route:saved"
    ROUTE_UPDATED = "route:updated"
    ROUTE_DELETED = "route:deleted"
    ROUTES_CLEARED = "routes:cleared"
    ROUTE_IMPORTED = "route:imported"


def _topic_name(topic: str | Topic) -> str:
    return topic.value if isinstance(topic, Topic) else str(topic)


@dataclass
class Event:
    """Record of a single publish, kept in the channel history."""

    topic: str
    payload: Any = None
    timestamp: float = field(default_factory=time.time)
    delivered: int = 0


@dataclass(eq=False)
class HandlerInfo:
    """Handler registration info."""

    handler: Handler
    once: bool = False  # Remove after first call
    active: bool = True


class EventChannel:
    """
    Synchronous publish/subscribe channel.

    Each instance is independent; construct one per tracker and pass it
    to the components that publish or listen.
    """

    def __init__(self, max_history: int = 500) -> None:
        self._handlers: dict[str, list[HandlerInfo]] = {}
        self._history: list[Event] = []
        self._max_history = max_history
        self._stats = {
            "events_published": 0,
            "events_delivered": 0,
            "handler_errors": 0,
        }

    def subscribe(
        self,
        topic: str | Topic,
        handler: Handler,
        once: bool = False,
    ) -> Unsubscribe:
        """
        Subscribe ``handler`` to ``topic``.

        Returns:
            Function that removes this subscription. Calling it more than
            once is harmless.
        """
        name = _topic_name(topic)
        info = HandlerInfo(handler=handler, once=once)
        self._handlers.setdefault(name, []).append(info)

        logger.debug(
            "Subscribed to %s: %s (once=%s)",
            name,
            getattr(handler, "__name__", repr(handler)),
            once,
        )

        def unsubscribe() -> None:
            self._remove(name, info)

        return unsubscribe

    def subscribe_once(self, topic: str | Topic, handler: Handler) -> Unsubscribe:
        """Subscribe a handler that is removed after its first invocation."""
        return self.subscribe(topic, handler, once=True)

    def on(
        self, topic: str | Topic, once: bool = False
    ) -> Callable[[Handler], Handler]:
        """
        Decorator for subscribing to a topic.

        Usage:
            @channel.on(Topic.SESSION_STARTED)
            def started(payload):
                ...
        """
        def decorator(handler: Handler) -> Handler:
            self.subscribe(topic, handler, once=once)
            return handler
        return decorator

    def unsubscribe(self, topic: str | Topic, handler: Handler) -> bool:
        """Remove the first registration of ``handler``. Returns True if found."""
        name = _topic_name(topic)
        for info in self._handlers.get(name, []):
            if info.handler == handler:
                self._remove(name, info)
                return True
        return False

    def _remove(self, name: str, info: HandlerInfo) -> None:
        info.active = False
        handlers = self._handlers.get(name)
        if handlers and info in handlers:
            handlers.remove(info)
            if not handlers:
                del self._handlers[name]

    def publish(self, topic: str | Topic, payload: Any = None) -> Event:
        """
        Deliver ``payload`` to every current subscriber of ``topic``.

        Handlers run in subscription order. A handler that raises is
        logged and skipped; the remaining handlers still run.
        """
        name = _topic_name(topic)
        event = Event(topic=name, payload=payload)
        self._stats["events_published"] += 1

        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        handlers = list(self._handlers.get(name, ()))
        if not handlers:
            logger.debug("No handlers for %s", name)
            return event

        for info in handlers:
            # Removed by an earlier handler during this publish
            if not info.active:
                continue
            if info.once:
                self._remove(name, info)

            try:
                info.handler(payload)
                event.delivered += 1
                self._stats["events_delivered"] += 1
            except Exception as e:
                logger.error(
                    "Handler error for %s: %s - %s",
                    name,
                    getattr(info.handler, "__name__", repr(info.handler)),
                    e,
                )
                self._stats["handler_errors"] += 1

        return event

    def has_subscribers(self, topic: str | Topic) -> bool:
        return self.listener_count(topic) > 0

    def listener_count(self, topic: str | Topic) -> int:
        return len(self._handlers.get(_topic_name(topic), ()))

    def topics(self) -> list[str]:
        """Topics that currently have at least one subscriber."""
        return list(self._handlers)

    def clear(self, topic: str | Topic | None = None) -> None:
        """Drop subscribers of one topic, or of every topic."""
        names = [_topic_name(topic)] if topic is not None else list(self._handlers)
        for name in names:
            for info in self._handlers.pop(name, []):
                info.active = False

    def get_history(
        self,
        topic: str | Topic | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Get recent events, optionally filtered by topic."""
        events = self._history
        if topic is not None:
            name = _topic_name(topic)
            events = [e for e in events if e.topic == name]
        return events[-limit:]

    def get_stats(self) -> dict:
        """Get channel statistics."""
        return {
            **self._stats,
            "handler_count": sum(len(h) for h in self._handlers.values()),
            "history_size": len(self._history),
        }

    def clear_history(self) -> None:
        """Clear publish history."""
        self._history.clear()
