import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from trailtrack.cli import cli
from trailtrack.core.session import TrackingSession
from trailtrack.domain.models import Position, SavedRoute
from trailtrack.infrastructure.storage.kv import SQLiteKeyValueStore
from trailtrack.infrastructure.storage.routes import RouteStore
from trailtrack.infrastructure.storage.snapshot import SnapshotStore


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    yml = tmp_path / "trailtrack.yml"
    yml.write_text(
        f"""
logging:
  level: WARNING
storage:
  db_path: {tmp_path / "data" / "trailtrack.db"}
simulator:
  interval_ms: 50
  start_lat: 41.0
  start_lng: 29.0
        """.strip(),
        encoding="utf-8",
    )
    return yml


@pytest.fixture
def saved_route(tmp_path: Path, config_file: Path) -> SavedRoute:
    route = SavedRoute(
        name="Harbour",
        points=[Position(lat=41.0, lng=29.0, timestamp=0), Position(lat=41.01, lng=29.0, timestamp=60_000)],
        distance=1.11,
        duration=60_000,
    )
    RouteStore(SQLiteKeyValueStore(tmp_path / "data" / "trailtrack.db")).save(route)
    return route


def invoke(*args):
    return CliRunner().invoke(cli, list(args), prog_name="trailtrack")


def test_version_command():
    result = invoke("version")
    assert result.exit_code == 0
    assert "trailtrack" in result.stdout


def test_config_validate(config_file):
    result = invoke("config-validate", str(config_file))
    assert result.exit_code == 0
    assert "Config OK" in result.stdout


def test_config_validate_failure(tmp_path):
    bad = tmp_path / "bad.yml"
    bad.write_text("ingestion:\n  min_interval_ms: -5\n", encoding="utf-8")
    result = invoke("config-validate", str(bad))
    assert result.exit_code == 1


def test_config_which(config_file):
    result = invoke("config-which", "--config", str(config_file))
    assert result.exit_code == 0
    assert str(config_file.resolve()) in result.stdout.replace("\n", "")


def test_routes_empty(config_file):
    result = invoke("routes", "--config", str(config_file))
    assert result.exit_code == 0
    assert "No saved routes" in result.stdout


def test_routes_lists_saved(config_file, saved_route):
    result = invoke("routes", "--config", str(config_file))
    assert result.exit_code == 0
    assert "Saved routes (1)" in result.stdout


def test_show(config_file, saved_route):
    result = invoke("show", saved_route.id, "--config", str(config_file))
    assert result.exit_code == 0
    assert json.loads(result.stdout)["name"] == "Harbour"


def test_show_unknown(config_file):
    result = invoke("show", "nope", "--config", str(config_file))
    assert result.exit_code == 1


def test_rename_and_delete(config_file, saved_route, tmp_path):
    store = RouteStore(SQLiteKeyValueStore(tmp_path / "data" / "trailtrack.db"))

    assert invoke("rename", saved_route.id, "Pier", "--config", str(config_file)).exit_code == 0
    assert store.get_by_id(saved_route.id).name == "Pier"

    assert invoke("delete", saved_route.id, "--config", str(config_file)).exit_code == 0
    assert store.count() == 0
    assert invoke("delete", saved_route.id, "--config", str(config_file)).exit_code == 1


@pytest.mark.parametrize("fmt", ["gpx", "kml", "json"])
def test_export(config_file, saved_route, tmp_path, fmt):
    out = tmp_path / f"route.{fmt}"
    result = invoke("export", saved_route.id, "--format", fmt, "--output", str(out), "--config", str(config_file))
    assert result.exit_code == 0
    assert out.exists()


def test_export_unknown_format(config_file, saved_route):
    result = invoke("export", saved_route.id, "--format", "csv", "--config", str(config_file))
    assert result.exit_code == 2


def test_link_google_and_apple(config_file, saved_route):
    result = invoke("link", saved_route.id, "--config", str(config_file))
    assert result.exit_code == 0
    stdout = result.stdout.replace("\n", "")
    assert "origin=41.0,29.0" in stdout
    assert "destination=41.01,29.0" in stdout

    result = invoke("link", saved_route.id, "--provider", "apple", "--config", str(config_file))
    assert result.exit_code == 0
    assert "saddr=41.0,29.0&daddr=41.01,29.0" in result.stdout.replace("\n", "")


def test_link_unknown_provider(config_file, saved_route):
    result = invoke("link", saved_route.id, "--provider", "bing", "--config", str(config_file))
    assert result.exit_code == 2


def test_link_route_without_points(config_file, tmp_path):
    empty = SavedRoute(name="Empty")
    RouteStore(SQLiteKeyValueStore(tmp_path / "data" / "trailtrack.db")).save(empty)
    result = invoke("link", empty.id, "--config", str(config_file))
    assert result.exit_code == 1


def test_import(config_file, tmp_path):
    src = tmp_path / "walk.json"
    src.write_text(json.dumps({"points": [{"lat": 1.0, "lng": 1.0}, {"lat": 1.001, "lng": 1.0}]}), encoding="utf-8")

    result = invoke("import", str(src), "--config", str(config_file))

    assert result.exit_code == 0
    routes = RouteStore(SQLiteKeyValueStore(tmp_path / "data" / "trailtrack.db")).get_all()
    assert routes[0].name == "walk"
    assert routes[0].point_count == 2
    assert routes[0].distance > 0.1


def test_import_invalid(config_file, tmp_path):
    src = tmp_path / "bad.json"
    src.write_text('[{"lat": "x"}]', encoding="utf-8")
    assert invoke("import", str(src), "--config", str(config_file)).exit_code == 1


def test_snapshot_show_and_clear(config_file, tmp_path):
    kv = SQLiteKeyValueStore(tmp_path / "data" / "trailtrack.db")
    session = TrackingSession("Unfinished")
    session.start()
    session.record_point(Position(lat=41.0, lng=29.0))
    SnapshotStore(kv).save_snapshot(session)

    shown = invoke("snapshot", "show", "--config", str(config_file))
    assert shown.exit_code == 0
    assert "Unfinished" in shown.stdout
    assert "resumable" in shown.stdout

    assert invoke("snapshot", "clear", "--config", str(config_file)).exit_code == 0
    assert "No snapshot" in invoke("snapshot", "show", "--config", str(config_file)).stdout


def test_track_with_simulator_saves_route(config_file, tmp_path):
    result = invoke("track", "--duration", "0.3", "--name", "Sim run", "--config", str(config_file))

    assert result.exit_code == 0
    assert "Saved route" in result.stdout
    routes = RouteStore(SQLiteKeyValueStore(tmp_path / "data" / "trailtrack.db")).get_all()
    assert routes[0].name == "Sim run"
    assert routes[0].point_count >= 2


def test_track_no_save(config_file, tmp_path):
    result = invoke("track", "--duration", "0.1", "--no-save", "--config", str(config_file))
    assert result.exit_code == 0
    assert RouteStore(SQLiteKeyValueStore(tmp_path / "data" / "trailtrack.db")).count() == 0


def test_track_unknown_source(config_file):
    assert invoke("track", "--source", "bluetooth", "--config", str(config_file)).exit_code == 2
