from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LoggingConfig(BaseModel):
    level: LogLevel = Field(LogLevel.INFO)
    format: str = Field("%(asctime)s %(levelname)s %(name)s: %(message)s")

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class StorageConfig(BaseModel):
    db_path: Path = Field(Path("~/.local/share/trailtrack/trailtrack.db"))
    snapshot_key: str = Field("tracking_session_snapshot", min_length=1)
    routes_key: str = Field("tracking_routes", min_length=1)
    snapshot_max_age_hours: float = Field(24.0, gt=0, le=24 * 30)

    @field_validator("db_path")
    @classmethod
    def _expand_db_path(cls, value: Path) -> Path:
        return value.expanduser()


class IngestionConfig(BaseModel):
    min_interval_ms: int = Field(0, ge=0)
    dedup: bool = Field(False)


class SimulatorConfig(BaseModel):
    interval_ms: int = Field(1000, ge=50, le=60_000)
    speed: float = Field(1.4, ge=0, le=50)
    direction_variance: float = Field(0.3, ge=0, le=3.15)
    accuracy: float = Field(10.0, ge=0)
    dynamic_pace: bool = Field(True)
    start_lat: float | None = Field(None, ge=-90, le=90)
    start_lng: float | None = Field(None, ge=-180, le=180)

    @model_validator(mode="after")
    def _start_pair(self) -> SimulatorConfig:
        if (self.start_lat is None) != (self.start_lng is None):
            raise ValueError("start_lat and start_lng must be set together")
        return self


class GPSConfig(BaseModel):
    enabled: bool = Field(True)
    host: str = Field("localhost")
    port: int = Field(2947, ge=1, le=65535)
    timeout: float = Field(10.0, gt=0)
    reconnect_delay: float = Field(5.0, ge=0)
    max_reconnect_attempts: int = Field(0, ge=0)
    mock_mode: bool = Field(False)

    @field_validator("host")
    @classmethod
    def _validate_host(cls, value: str) -> str:
        if not value or any(c.isspace() for c in value):
            raise ValueError("host must be a valid hostname or IP")
        return value


class TrackerConfig(BaseModel):
    stop_on_error_codes: list[int] = Field(default_factory=list)
    default_name: str = Field("Untitled", min_length=1)

    @field_validator("stop_on_error_codes")
    @classmethod
    def _validate_codes(cls, value: list[int]) -> list[int]:
        for code in value:
            if code < 0 or code > 3:
                raise ValueError(f"invalid position error code: {code}")
        return sorted(set(value))


class TrailtrackConfig(BaseModel):
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
    gps: GPSConfig = Field(default_factory=GPSConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)


def load_config(path: Path) -> TrailtrackConfig:
    with Path(path).expanduser().open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"config root must be a mapping, got {type(raw).__name__}")
    try:
        return TrailtrackConfig.model_validate(raw)
    except ValidationError as exc:  # pragma: no cover - formatting
        raise ValueError(str(exc)) from exc


def resolve_config_path(cli_path: Path | None) -> Path:
    """Resolve config path by priority: CLI, env, user config dir, repo configs."""
    candidates: list[Path] = []
    if cli_path:
        p = Path(cli_path).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    env = os.environ.get("TRAILTRACK_CONFIG")
    if env:
        p = Path(env).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    for p in [Path("~/.config/trailtrack/trailtrack.yml").expanduser(), Path("configs/trailtrack.yml")]:
        if p.exists():
            return p.resolve()
        candidates.append(p)
    # Fallback to first candidate even if not exists to surface errors consistently
    return candidates[0] if candidates else Path("configs/trailtrack.yml").resolve()
