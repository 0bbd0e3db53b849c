from __future__ import annotations

import asyncio
import importlib.metadata as md
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import TrailtrackConfig, load_config, resolve_config_path
from .core import geo
from .core.errors import RouteImportError
from .core.events import Topic
from .core.session import format_elapsed
from .domain.models import SavedRoute
from .infrastructure.storage.export import EXPORT_FORMATS, MAP_PROVIDERS, export_route
from .infrastructure.storage.kv import SQLiteKeyValueStore
from .infrastructure.storage.routes import RouteStore
from .infrastructure.storage.snapshot import SnapshotStore
from .tracker import SOURCE_KINDS, Tracker, build_source

# Typer application: tests import this
app = typer.Typer(no_args_is_help=True, add_completion=False, help="trailtrack CLI")
snapshot_app = typer.Typer(no_args_is_help=True, help="Inspect the in-progress session snapshot")
app.add_typer(snapshot_app, name="snapshot")
console = Console()

DEFAULT_CONFIG = Path("configs/trailtrack.yml")


def _load(config: Path | None) -> TrailtrackConfig:
    resolved = resolve_config_path(config)
    try:
        cfg = load_config(resolved)
    except (OSError, ValueError) as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    logging.basicConfig(level=cfg.logging.level.value, format=cfg.logging.format)
    return cfg


def _route_store(cfg: TrailtrackConfig) -> RouteStore:
    return RouteStore(SQLiteKeyValueStore(cfg.storage.db_path), key=cfg.storage.routes_key)


def _snapshot_store(cfg: TrailtrackConfig) -> SnapshotStore:
    return SnapshotStore(
        SQLiteKeyValueStore(cfg.storage.db_path),
        key=cfg.storage.snapshot_key,
        max_age_hours=cfg.storage.snapshot_max_age_hours,
    )


def _get_route(store: RouteStore, route_id: str) -> SavedRoute:
    route = store.get_by_id(route_id)
    if route is None:
        console.print(f"[red]No route with id {route_id}[/red]")
        raise typer.Exit(code=1)
    return route


@app.command()
def version() -> None:
    """Print version information."""
    try:
        console.print(f"trailtrack {md.version('trailtrack')}")
    except md.PackageNotFoundError:
        from . import __version__

        console.print(f"trailtrack {__version__}")
    raise typer.Exit(code=0)


@app.command(name="config-validate")
def config_validate(path: Path = typer.Argument(DEFAULT_CONFIG)) -> None:
    """Validate and show resolved configuration."""
    resolved = resolve_config_path(path)
    console.print(f"Using config: {resolved}")
    try:
        cfg = load_config(resolved)
    except (OSError, ValueError) as exc:
        console.print(f"Config validation failed: {exc}")
        raise typer.Exit(code=1) from exc
    console.print("Config OK.")
    console.print(f"- database: {cfg.storage.db_path}")
    console.print(f"- min interval: {cfg.ingestion.min_interval_ms} ms (dedup={cfg.ingestion.dedup})")
    console.print(f"- gpsd: {cfg.gps.host}:{cfg.gps.port}")


@app.command(name="config-which")
def config_which(config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c")) -> None:
    """Print resolved config path by priority rules."""
    console.print(str(resolve_config_path(config)))


async def _run_track(
    tracker: Tracker, name: str | None, duration: float, resume: bool, save: bool, verbose: bool
) -> SavedRoute | None:
    if verbose:
        tracker.channel.subscribe(
            Topic.POINT_ACCEPTED,
            lambda p: console.print(
                f"#{p['total']} {p['point'].lat:.6f},{p['point'].lng:.6f} "
                f"{p['distance']:.3f} km {p['speed']:.1f} km/h"
            ),
        )
    tracker.channel.subscribe(
        Topic.LOCATION_ERROR, lambda e: console.print(f"[yellow]GPS:[/yellow] {e['message']}")
    )

    session = tracker.start_tracking(name, resume=resume)
    console.print(f"Tracking '{session.name}' ({session.id}) for {duration:.0f}s ...")
    try:
        await asyncio.sleep(duration)
    except asyncio.CancelledError:
        tracker.save_and_exit()
        raise
    return tracker.stop_tracking(save=save)


@app.command()
def track(
    duration: float = typer.Option(60.0, "--duration", "-d", min=0, help="Seconds to track"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Session name"),
    resume: bool = typer.Option(False, "--resume", help="Resume the last unfinished session"),
    no_save: bool = typer.Option(False, "--no-save", help="Discard instead of saving"),
    source: str = typer.Option("sim", "--source", "-s", help="Position source: sim or gpsd"),
    interval_ms: Optional[int] = typer.Option(None, "--interval-ms", min=50, help="Simulator tick"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print every accepted point"),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
) -> None:
    """Record a session from the simulator or gpsd."""
    if source not in SOURCE_KINDS:
        console.print(f"[red]Unknown source {source}; choose from {', '.join(SOURCE_KINDS)}[/red]")
        raise typer.Exit(code=2)

    cfg = _load(config)
    if interval_ms is not None:
        cfg.simulator.interval_ms = interval_ms

    tracker = Tracker(
        build_source(cfg, source),
        kv=SQLiteKeyValueStore(cfg.storage.db_path),
        config=cfg,
    )
    try:
        route = asyncio.run(_run_track(tracker, name, duration, resume, not no_save, verbose))
    except KeyboardInterrupt:
        console.print("Interrupted. Snapshot saved, continue with `trailtrack track --resume`.")
        raise typer.Exit(code=130)

    stats = tracker.stats().get("session", {})
    console.print(
        f"Stopped: {stats.get('points', 0)} points, {stats.get('distance_km', 0.0):.3f} km, "
        f"{stats.get('elapsed', '00:00:00')}"
    )
    if route is not None:
        console.print(f"[green]Saved route {route.id}[/green]")
    elif not no_save:
        console.print("Nothing saved.")


@app.command()
def routes(config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c")) -> None:
    """List saved routes."""
    store = _route_store(_load(config))
    saved = store.get_all()
    if not saved:
        console.print("No saved routes.")
        return

    table = Table(title=f"Saved routes ({len(saved)})")
    for column in ("ID", "Name", "Created", "Points", "Distance (km)", "Duration", "Avg km/h"):
        table.add_column(column)
    for route in saved:
        table.add_row(
            route.id,
            route.name,
            route.created_at.strftime("%Y-%m-%d %H:%M"),
            str(route.point_count),
            f"{route.distance:.3f}",
            format_elapsed(route.duration),
            f"{route.average_speed:.1f}",
        )
    console.print(table)


@app.command()
def show(
    route_id: str = typer.Argument(...),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
) -> None:
    """Show one saved route as JSON."""
    route = _get_route(_route_store(_load(config)), route_id)
    console.print_json(data=route.to_dict())


@app.command()
def rename(
    route_id: str = typer.Argument(...),
    new_name: str = typer.Argument(...),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
) -> None:
    """Rename a saved route."""
    if not _route_store(_load(config)).update(route_id, name=new_name):
        console.print(f"[red]Could not rename {route_id}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Renamed {route_id} to {new_name}")


@app.command()
def delete(
    route_id: str = typer.Argument(...),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
) -> None:
    """Delete a saved route."""
    if not _route_store(_load(config)).delete(route_id):
        console.print(f"[red]No route with id {route_id}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Deleted {route_id}")


@app.command()
def export(
    route_id: str = typer.Argument(...),
    fmt: str = typer.Option("gpx", "--format", "-f", help="gpx, kml or json"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
) -> None:
    """Export a saved route to a file."""
    if fmt not in EXPORT_FORMATS:
        console.print(f"[red]Unknown format {fmt}; choose from {', '.join(EXPORT_FORMATS)}[/red]")
        raise typer.Exit(code=2)
    route = _get_route(_route_store(_load(config)), route_id)
    path = export_route(route, fmt, output or Path(f"{route.id}.{fmt}"))
    console.print(f"Exported {route.point_count} points to {path}")


@app.command()
def link(
    route_id: str = typer.Argument(...),
    provider: str = typer.Option("google", "--provider", "-p", help="google or apple"),
    max_waypoints: int = typer.Option(23, "--max-waypoints", min=0, help="Google Maps stopovers"),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
) -> None:
    """Print a map directions link for a saved route."""
    if provider not in MAP_PROVIDERS:
        console.print(f"[red]Unknown provider {provider}; choose from {', '.join(MAP_PROVIDERS)}[/red]")
        raise typer.Exit(code=2)
    route = _get_route(_route_store(_load(config)), route_id)
    if provider == "google":
        url = MAP_PROVIDERS[provider](route, max_waypoints)
    else:
        url = MAP_PROVIDERS[provider](route)
    if not url:
        console.print("Route has no points.")
        raise typer.Exit(code=1)
    console.print(url, soft_wrap=True, markup=False, highlight=False)


@app.command(name="import")
def import_route(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
) -> None:
    """Import a JSON list of {lat, lng} points as a saved route."""
    store = _route_store(_load(config))
    try:
        points = store.import_points(path.read_text(encoding="utf-8"), source=str(path))
    except RouteImportError as exc:
        console.print(f"[red]Import failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    route = SavedRoute(
        name=name or path.stem,
        points=points,
        distance=geo.total_distance(points),
    )
    if not store.save(route):
        console.print("[red]Could not save imported route[/red]")
        raise typer.Exit(code=1)
    console.print(f"Imported {route.point_count} points as {route.id}")


@snapshot_app.command("show")
def snapshot_show(config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c")) -> None:
    """Show the unfinished-session snapshot, if any."""
    store = _snapshot_store(_load(config))
    snapshot = store.load_snapshot()
    if snapshot is None:
        console.print("No snapshot.")
        return
    saved = datetime.fromtimestamp(snapshot.saved_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
    state = "expired" if store.is_stale(snapshot) else "resumable"
    console.print(
        f"'{snapshot.name}': {len(snapshot.points)} points, {len(snapshot.waypoints)} waypoints, "
        f"{format_elapsed(snapshot.elapsed_time_ms)} tracked, saved {saved} ({state})"
    )


@snapshot_app.command("clear")
def snapshot_clear(config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c")) -> None:
    """Discard the unfinished-session snapshot."""
    if not _snapshot_store(_load(config)).clear_snapshot():
        raise typer.Exit(code=1)
    console.print("Snapshot cleared.")


def launch() -> None:
    """Entry point when executed as a module/script."""
    cli()  # use the prepared Click command


# Click command export
cli = typer.main.get_command(app)

__all__ = ["app", "cli"]

if __name__ == "__main__":
    launch()
