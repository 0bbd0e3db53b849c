"""Storage infrastructure - key-value slots, session snapshots, saved routes."""

from .export import (
    EXPORT_FORMATS,
    MAP_PROVIDERS,
    export_route,
    to_apple_maps_url,
    to_google_maps_url,
    to_gpx,
    to_json,
    to_kml,
)
from .kv import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from .routes import ROUTES_KEY, RouteStore
from .snapshot import SNAPSHOT_KEY, SnapshotStore

__all__ = [
    "EXPORT_FORMATS",
    "MAP_PROVIDERS",
    "ROUTES_KEY",
    "SNAPSHOT_KEY",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RouteStore",
    "SQLiteKeyValueStore",
    "SnapshotStore",
    "export_route",
    "to_apple_maps_url",
    "to_google_maps_url",
    "to_gpx",
    "to_json",
    "to_kml",
]
