"""
Geo Math Unit Tests
===================

Tests for haversine distance, path length and bearing.
"""

import math

import pytest

from trailtrack.core import geo
from trailtrack.domain.models import Position

# Latitude delta that is exactly 1 km along a meridian on the haversine sphere
ONE_KM_LAT = math.degrees(1 / geo.EARTH_RADIUS_KM)


class TestHaversine:
    """Tests for point-to-point distance."""

    def test_same_point_is_zero(self):
        assert geo.haversine(41.0, 29.0, 41.0, 29.0) == 0.0

    def test_one_km_north(self):
        """A meridian step of 1/R radians is 1 km."""
        assert geo.haversine(0.0, 0.0, ONE_KM_LAT, 0.0) == pytest.approx(1.0, abs=1e-9)

    def test_known_city_distance(self):
        """London to Paris is roughly 344 km."""
        d = geo.haversine(51.5074, -0.1278, 48.8566, 2.3522)
        assert 340 < d < 348

    def test_symmetric(self):
        a = Position(lat=41.0, lng=29.0)
        b = Position(lat=41.5, lng=29.7)
        assert geo.distance(a, b) == pytest.approx(geo.distance(b, a))


class TestTotalDistance:
    """Tests for path length."""

    def test_fewer_than_two_points(self):
        assert geo.total_distance([]) == 0.0
        assert geo.total_distance([Position(lat=1.0, lng=1.0)]) == 0.0

    def test_two_km_path(self):
        points = [Position(lat=i * ONE_KM_LAT, lng=0.0) for i in range(3)]
        assert geo.total_distance(points) == pytest.approx(2.0, abs=1e-9)

    def test_out_and_back_counts_both_legs(self):
        a = Position(lat=0.0, lng=0.0)
        b = Position(lat=ONE_KM_LAT, lng=0.0)
        assert geo.total_distance([a, b, a]) == pytest.approx(2.0, abs=1e-9)

    def test_concatenated_paths_add_up(self):
        a = [Position(lat=0.0, lng=0.01 * i) for i in range(4)]
        b = [Position(lat=0.02 * i, lng=0.05) for i in range(1, 4)]
        joined = geo.total_distance(a + b)
        bridge = geo.distance(a[-1], b[0])
        assert joined == pytest.approx(
            geo.total_distance(a) + bridge + geo.total_distance(b), rel=1e-12
        )

    def test_paths_sharing_a_junction_add_up(self):
        a = [Position(lat=0.0, lng=0.01 * i) for i in range(4)]
        b = [a[-1]] + [Position(lat=0.02 * i, lng=0.03) for i in range(1, 4)]
        assert geo.total_distance(a + b[1:]) == pytest.approx(
            geo.total_distance(a) + geo.total_distance(b), rel=1e-12
        )

    def test_steps_along_the_equator(self):
        """0.009 degrees of longitude at the equator is about 1 km."""
        points = [Position(lat=0.0, lng=lng) for lng in (0.0, 0.009, 0.018)]
        assert geo.total_distance(points[:2]) == pytest.approx(1.0, abs=0.05)
        assert geo.total_distance(points) == pytest.approx(2.0, abs=0.05)


class TestBearing:
    """Tests for initial bearing."""

    @pytest.mark.parametrize(
        "target,expected",
        [
            ((1.0, 0.0), 0.0),
            ((0.0, 1.0), 90.0),
            ((-1.0, 0.0), 180.0),
            ((0.0, -1.0), 270.0),
        ],
    )
    def test_cardinal_directions(self, target, expected):
        origin = Position(lat=0.0, lng=0.0)
        result = geo.bearing(origin, Position(lat=target[0], lng=target[1]))
        assert result == pytest.approx(expected, abs=1e-6)

    def test_range(self):
        result = geo.bearing(Position(lat=10.0, lng=10.0), Position(lat=9.0, lng=9.0))
        assert 0 <= result < 360


class TestDestination:
    """Tests for the flat-earth offset used by the simulator."""

    def test_moves_north(self):
        lat, lng = geo.destination(0.0, 0.0, 0.0, geo.METERS_PER_DEGREE)
        assert lat == pytest.approx(1.0)
        assert lng == pytest.approx(0.0)

    def test_offset_matches_haversine_for_short_steps(self):
        lat, lng = geo.destination(41.0, 29.0, 45.0, 100.0)
        assert geo.haversine(41.0, 29.0, lat, lng) * 1000 == pytest.approx(100.0, rel=0.01)
