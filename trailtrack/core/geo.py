"""
Geographic Math
===============

Great-circle distance, path length and bearing between GPS positions.
Pure functions, no state.

Usage:
    km = distance(a, b)
    total = total_distance(session.points)
    heading = bearing(a, b)
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Protocol

EARTH_RADIUS_KM = 6371.0
METERS_PER_DEGREE = 111320.0


class HasCoordinates(Protocol):
    lat: float
    lng: float


def haversine(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate distance between two coordinates using the Haversine formula.

    Args:
        lat1, lng1: First point coordinates (degrees)
        lat2, lng2: Second point coordinates (degrees)

    Returns:
        Distance in kilometres
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance(a: HasCoordinates, b: HasCoordinates) -> float:
    """Distance between two positions in kilometres."""
    return haversine(a.lat, a.lng, b.lat, b.lng)


def total_distance(points: Sequence[HasCoordinates]) -> float:
    """Length of the path through ``points`` in kilometres (0 for < 2 points)."""
    if len(points) < 2:
        return 0.0
    return sum(distance(prev, point) for prev, point in zip(points, points[1:]))


def bearing(origin: HasCoordinates, target: HasCoordinates) -> float:
    """
    Initial compass bearing from ``origin`` to ``target``.

    Returns:
        Bearing in degrees (0-360, 0=North)
    """
    lat1_rad = math.radians(origin.lat)
    lat2_rad = math.radians(target.lat)
    dlng = math.radians(target.lng - origin.lng)

    x = math.sin(dlng) * math.cos(lat2_rad)
    y = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(
        lat2_rad
    ) * math.cos(dlng)

    return (math.degrees(math.atan2(x, y)) + 360) % 360


def destination(
    lat: float, lng: float, bearing_deg: float, meters: float
) -> tuple[float, float]:
    """
    Offset a coordinate by ``meters`` along ``bearing_deg``.

    Flat-earth approximation, good enough for the few metres a simulated
    fix moves per tick.
    """
    heading = math.radians(bearing_deg)
    dlat = meters * math.cos(heading) / METERS_PER_DEGREE
    dlng = meters * math.sin(heading) / (METERS_PER_DEGREE * math.cos(math.radians(lat)))
    return lat + dlat, lng + dlng
