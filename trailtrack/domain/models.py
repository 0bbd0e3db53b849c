"""trailtrack Domain Models - Pydantic models for tracking entities."""

from __future__ import annotations

import time
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class SessionState(str, Enum):
    """Lifecycle states of a tracking session."""

    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


class Position(BaseModel):
    """A single GPS fix as delivered by a position source."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)  # metres
    timestamp: int | None = None  # epoch ms

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class RoutePoint(Position):
    """A fix that has been accepted into a session."""

    timestamp: int


class Waypoint(BaseModel):
    """Point of interest marked by the user while tracking."""

    model_config = ConfigDict(frozen=True)

    MAX_NAME_LENGTH: ClassVar[int] = 50

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    name: str = ""
    timestamp: int = Field(default_factory=now_ms)

    @field_validator("name", mode="before")
    @classmethod
    def _clip_name(cls, value: Any) -> str:
        return str(value or "")[: cls.MAX_NAME_LENGTH].strip()


class SnapshotData(BaseModel):
    """Recoverable image of an in-progress session."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    points: list[RoutePoint] = Field(default_factory=list)
    waypoints: list[Waypoint] = Field(default_factory=list)
    start_time: int = Field(0, alias="startTime")
    elapsed_time_ms: int = Field(0, ge=0, alias="elapsedTime")
    saved_at: int = Field(..., alias="savedAt")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SavedRoute(BaseModel):
    """Permanently stored route, one entry per finished session."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Untitled"
    points: list[Position] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), alias="createdAt"
    )
    distance: float = 0.0  # km
    duration: int = 0  # ms
    average_speed: float = Field(0.0, alias="averageSpeed")  # km/h
    waypoints: list[Waypoint] = Field(default_factory=list)

    @property
    def point_count(self) -> int:
        return len(self.points)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
