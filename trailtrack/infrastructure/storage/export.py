"""Route exporters: GPX, KML, plain JSON and map direction links."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from html import escape
from pathlib import Path
from typing import Sequence
from urllib.parse import quote

from ...domain.models import Position, SavedRoute

logger = logging.getLogger(__name__)

CREATOR = "trailtrack"
EXPORT_FORMATS = ("gpx", "kml", "json")


def _iso_ms(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, UTC).isoformat().replace("+00:00", "Z")


def to_gpx(route: SavedRoute) -> str:
    """GPX 1.1 track with one segment; waypoints become ``<wpt>`` elements."""
    name = escape(route.name or "Route")
    created = route.created_at.astimezone(UTC).isoformat().replace("+00:00", "Z")

    gpx_lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<gpx version="1.1" creator="{CREATOR}" xmlns="http://www.topografix.com/GPX/1/1">',
        "  <metadata>",
        f"    <name>{name}</name>",
        f"    <time>{created}</time>",
        "  </metadata>",
    ]

    for wp in route.waypoints:
        gpx_lines.append(f'  <wpt lat="{wp.lat}" lon="{wp.lng}">')
        gpx_lines.append(f"    <time>{_iso_ms(wp.timestamp)}</time>")
        gpx_lines.append(f"    <name>{escape(wp.name)}</name>")
        gpx_lines.append("  </wpt>")

    gpx_lines.extend([
        "  <trk>",
        f"    <name>{name}</name>",
        "    <trkseg>",
    ])

    for p in route.points:
        if p.timestamp is not None:
            gpx_lines.append(
                f'      <trkpt lat="{p.lat}" lon="{p.lng}"><time>{_iso_ms(p.timestamp)}</time></trkpt>'
            )
        else:
            gpx_lines.append(f'      <trkpt lat="{p.lat}" lon="{p.lng}"></trkpt>')

    gpx_lines.extend([
        "    </trkseg>",
        "  </trk>",
        "</gpx>",
    ])
    return "\n".join(gpx_lines)


def to_kml(route: SavedRoute) -> str:
    """KML document with the track as a LineString (``lng,lat,alt`` tuples)."""
    name = escape(route.name or "Route")
    coordinates = " ".join(f"{p.lng},{p.lat},0" for p in route.points)

    kml_lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<kml xmlns="http://www.opengis.net/kml/2.2">',
        "  <Document>",
        f"    <name>{name}</name>",
        '    <Style id="trackStyle">',
        "      <LineStyle>",
        "        <color>ff0000ff</color>",
        "        <width>4</width>",
        "      </LineStyle>",
        "    </Style>",
        "    <Placemark>",
        f"      <name>{name}</name>",
        "      <styleUrl>#trackStyle</styleUrl>",
        "      <LineString>",
        "        <tessellate>1</tessellate>",
        f"        <coordinates>{coordinates}</coordinates>",
        "      </LineString>",
        "    </Placemark>",
    ]
    for wp in route.waypoints:
        kml_lines.extend([
            "    <Placemark>",
            f"      <name>{escape(wp.name)}</name>",
            f"      <Point><coordinates>{wp.lng},{wp.lat},0</coordinates></Point>",
            "    </Placemark>",
        ])
    kml_lines.extend([
        "  </Document>",
        "</kml>",
    ])
    return "\n".join(kml_lines)


def to_json(route: SavedRoute) -> str:
    """Portable JSON that RouteStore.import_points can read back."""
    data = route.to_dict()
    return json.dumps(
        {
            "name": data["name"],
            "createdAt": data["createdAt"],
            "distance": data["distance"],
            "points": data["points"],
        },
        indent=2,
    )


_RENDERERS = {"gpx": to_gpx, "kml": to_kml, "json": to_json}


def export_route(route: SavedRoute, fmt: str, output_path: str | Path) -> Path:
    """
    Write ``route`` in ``fmt`` to ``output_path``.

    Raises:
        ValueError: unknown format
    """
    renderer = _RENDERERS.get(fmt.lower())
    if renderer is None:
        raise ValueError(f"unknown export format: {fmt} (expected one of {', '.join(EXPORT_FORMATS)})")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(renderer(route), encoding="utf-8")
    logger.info("Exported %d points to %s: %s", route.point_count, fmt.upper(), output_path)
    return output_path


# ==================== Map links ====================

GOOGLE_MAPS_MAX_WAYPOINTS = 23


def _sample_points(points: Sequence[Position], max_points: int) -> list[Position]:
    """Evenly spaced subset of at most ``max_points``, keeping both ends."""
    if len(points) <= max_points:
        return list(points)
    if max_points <= 1:
        return list(points[:max_points])
    step = (len(points) - 1) / (max_points - 1)
    # half-up rounding, same as JavaScript Math.round for positive values
    return [points[int(i * step + 0.5)] for i in range(max_points)]


def to_google_maps_url(route: SavedRoute, max_waypoints: int = GOOGLE_MAPS_MAX_WAYPOINTS) -> str:
    """
    Google Maps driving directions through the route.

    Intermediate points are sampled down to ``max_waypoints``. Returns an
    empty string for a route without points.
    """
    points = route.points
    if not points:
        return ""

    origin, destination = points[0], points[-1]
    url = (
        "https://www.google.com/maps/dir/?api=1"
        f"&origin={origin.lat},{origin.lng}"
        f"&destination={destination.lat},{destination.lng}"
        "&travelmode=driving"
    )
    if len(points) > 2 and max_waypoints > 0:
        waypoints = "|".join(
            f"{p.lat},{p.lng}" for p in _sample_points(points[1:-1], max_waypoints)
        )
        url += f"&waypoints={quote(waypoints, safe='')}"
    return url


def to_apple_maps_url(route: SavedRoute) -> str:
    """Apple Maps driving directions from the first to the last point."""
    points = route.points
    if not points:
        return ""
    origin, destination = points[0], points[-1]
    return (
        f"http://maps.apple.com/?saddr={origin.lat},{origin.lng}"
        f"&daddr={destination.lat},{destination.lng}&dirflg=d"
    )


MAP_PROVIDERS = {"google": to_google_maps_url, "apple": to_apple_maps_url}
