"""Saved route repository."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from ...core.errors import RouteImportError
from ...core.events import EventChannel, Topic
from ...domain.models import Position, SavedRoute

if TYPE_CHECKING:
    from .kv import KeyValueStore

logger = logging.getLogger(__name__)

ROUTES_KEY = "tracking_routes"

_ROUTE_LIST = TypeAdapter(list[SavedRoute])
_POINT_LIST = TypeAdapter(list[Position])


class RouteStore:
    """
    Repository for finished routes.

    All routes live as one JSON array under a single key, oldest first.
    Read failures yield an empty list; write failures return False.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        key: str = ROUTES_KEY,
        channel: EventChannel | None = None,
    ) -> None:
        self._kv = kv
        self.key = key
        self._channel = channel

    def get_all(self) -> list[SavedRoute]:
        """Get every saved route."""
        try:
            raw = self._kv.get(self.key)
            if not raw:
                return []
            return _ROUTE_LIST.validate_json(raw)
        except Exception as e:
            logger.error("Error reading saved routes: %s", e)
            return []

    def _write(self, routes: list[SavedRoute]) -> None:
        self._kv.set(self.key, json.dumps([r.to_dict() for r in routes]))

    def save(self, route: SavedRoute) -> bool:
        """Append a new route."""
        try:
            routes = self.get_all()
            routes.append(route)
            self._write(routes)
        except Exception as e:
            logger.error("Error saving route %s: %s", route.id, e)
            return False

        logger.info("Saved route %s (%s, %.3f km)", route.id, route.name, route.distance)
        self._publish(Topic.ROUTE_SAVED, route)
        return True

    def get_by_id(self, route_id: str) -> SavedRoute | None:
        route_id = str(route_id)
        for route in self.get_all():
            if route.id == route_id:
                return route
        return None

    def update(self, route_id: str, **updates: Any) -> bool:
        """
        Update fields of an existing route.

        Returns:
            False if the route does not exist or the update is invalid.
        """
        routes = self.get_all()
        for index, route in enumerate(routes):
            if route.id == str(route_id):
                break
        else:
            return False

        try:
            routes[index] = SavedRoute.model_validate({**route.model_dump(), **updates})
            self._write(routes)
        except ValidationError as e:
            logger.warning("Rejected update for route %s: %s", route_id, e)
            return False
        except Exception as e:
            logger.error("Error updating route %s: %s", route_id, e)
            return False

        self._publish(Topic.ROUTE_UPDATED, routes[index])
        return True

    def delete(self, route_id: str) -> bool:
        routes = self.get_all()
        remaining = [r for r in routes if r.id != str(route_id)]
        if len(remaining) == len(routes):
            return False

        try:
            self._write(remaining)
        except Exception as e:
            logger.error("Error deleting route %s: %s", route_id, e)
            return False

        self._publish(Topic.ROUTE_DELETED, {"id": str(route_id)})
        return True

    def clear(self) -> bool:
        """Delete every saved route."""
        try:
            self._kv.delete(self.key)
        except Exception as e:
            logger.error("Error clearing routes: %s", e)
            return False

        self._publish(Topic.ROUTES_CLEARED, {})
        return True

    def count(self) -> int:
        return len(self.get_all())

    def has_routes(self) -> bool:
        return self.count() > 0

    def import_points(self, text: str, source: str = "") -> list[Position]:
        """
        Parse points from exported JSON.

        Accepts either a bare array of points or an object with a
        ``points`` array. Every point needs numeric ``lat`` and ``lng``.

        Raises:
            RouteImportError: the text is not JSON or has the wrong shape.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise RouteImportError(f"invalid JSON: {e}") from e

        if isinstance(data, dict) and isinstance(data.get("points"), list):
            data = data["points"]
        if not isinstance(data, list):
            raise RouteImportError(
                'expected an array of points or an object with a "points" array'
            )

        for p in data:
            if not isinstance(p, dict) or not all(
                isinstance(p.get(k), (int, float)) and not isinstance(p.get(k), bool)
                for k in ("lat", "lng")
            ):
                raise RouteImportError("every point needs numeric lat and lng")

        try:
            points = _POINT_LIST.validate_python(data)
        except ValidationError as e:
            raise RouteImportError(str(e)) from e

        self._publish(Topic.ROUTE_IMPORTED, {"points": points, "source": source})
        return points

    def _publish(self, topic: Topic, payload: Any) -> None:
        if self._channel is not None:
            self._channel.publish(topic, payload)
