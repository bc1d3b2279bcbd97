"""
Unit Tests for the command line interface.

Commands run against the file-backed in-memory triplestore and a local
backup directory, so every invocation goes through the real settings,
adapter factory and orchestrators.
"""

import asyncio
import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from conftest import FAMILY, GRAPH, cube_ntriples, static_cube_ntriples
from cube_cleanup.cli import main as cli_main
from cube_cleanup.cli.main import app
from cube_cleanup.config.settings import get_settings
from cube_cleanup.graph.triplestore.memory import InMemoryTriplestore

runner = CliRunner()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def dataset_file(tmp_path: Path) -> Path:
    """TriG file holding five versions of one cube and an unversioned cube."""
    path = tmp_path / "dataset.trig"

    async def build() -> None:
        store = InMemoryTriplestore(path=path)
        payload = "".join(cube_ntriples(v) for v in range(1, 6)) + static_cube_ntriples()
        await store.bulk_load(GRAPH, payload)
        await store.close()

    asyncio.run(build())
    return path


@pytest.fixture
def cli_env(tmp_path: Path, dataset_file: Path) -> dict[str, str]:
    return {
        "TRIPLESTORE_KIND": "memory",
        "TRIPLESTORE_QUERY_ENDPOINT": str(dataset_file),
        "BACKUP_KIND": "local",
        "BACKUP_PATH": str(tmp_path / "backups"),
        "CLEANUP_GRAPHS": GRAPH,
        "LOG_LEVEL": "ERROR",
    }


def backups(tmp_path: Path) -> list[Path]:
    return sorted((tmp_path / "backups").glob("*/*/*.nt"))


class TestCli:
    """Test cases for the cube-cleanup CLI."""

    def test_version(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["version"], env=cli_env)

        assert result.exit_code == 0
        assert "cube-cleanup version" in result.stdout

    def test_invalid_config_file(self, cli_env: dict[str, str], tmp_path: Path) -> None:
        result = runner.invoke(app, ["--config", str(tmp_path / "nope.json"), "version"], env=cli_env)

        assert result.exit_code == 1

    def test_test_connection(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["test-connection"], env=cli_env)

        assert result.exit_code == 0
        assert "Connected to memory" in result.stdout

    def test_versions(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["versions", "--graph", GRAPH, "--keep", "2"], env=cli_env)

        assert result.exit_code == 0
        assert result.stdout.count("DELETE") == 3
        assert "KEEP" in result.stdout

    def test_inspect(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["inspect", f"{FAMILY}/3", "--graph", GRAPH], env=cli_env)

        assert result.exit_code == 0
        assert "Air quality v3" in result.stdout

    def test_inspect_missing_cube(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["inspect", f"{FAMILY}/99", "--graph", GRAPH], env=cli_env)

        assert result.exit_code == 1

    def test_invalid_graph_exits_nonzero(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["versions", "--graph", "not-an-iri"], env=cli_env)

        assert result.exit_code == 1

    def test_cleanup_dry_run(self, cli_env: dict[str, str], tmp_path: Path, dataset_file: Path) -> None:
        before = dataset_file.read_text()

        result = runner.invoke(app, ["cleanup", "--dry-run"], env=cli_env)

        assert result.exit_code == 0
        assert "dry run" in result.stdout
        assert backups(tmp_path) == []
        assert dataset_file.read_text() == before

    def test_preview_runs_cleanup_as_dry_run(
        self, cli_env: dict[str, str], tmp_path: Path, dataset_file: Path
    ) -> None:
        before = dataset_file.read_text()

        result = runner.invoke(app, ["preview", "--graph", GRAPH, "--keep", "2"], env=cli_env)

        assert result.exit_code == 0, result.output
        assert "dry run" in result.stdout
        assert not (tmp_path / "backups").exists()
        assert dataset_file.read_text() == before

    def test_preview_unreachable_triplestore(self, cli_env: dict[str, str], tmp_path: Path) -> None:
        env = {**cli_env, "TRIPLESTORE_KIND": "fuseki", "TRIPLESTORE_QUERY_ENDPOINT": "http://127.0.0.1:9/ds/query"}

        result = runner.invoke(app, ["preview", "--graph", GRAPH], env=env)

        assert result.exit_code == 1
        assert not (tmp_path / "backups").exists()

    def test_cleanup_backup_list_and_restore(self, cli_env: dict[str, str], tmp_path: Path) -> None:
        result = runner.invoke(app, ["cleanup", "--keep", "2"], env=cli_env)
        assert result.exit_code == 0, result.output
        assert len(backups(tmp_path)) == 3

        result = runner.invoke(app, ["list-backups", "--json"], env=cli_env)
        assert result.exit_code == 0
        records = json.loads(result.stdout)
        assert {r["version"] for r in records} == {1, 2, 3}

        location = next(r["location"] for r in records if r["version"] == 1)
        result = runner.invoke(app, ["restore", location, "--graph", GRAPH], env=cli_env)
        assert result.exit_code == 0, result.output
        assert "Restored" in result.stdout

        result = runner.invoke(app, ["restore", location, "--graph", GRAPH], env=cli_env)
        assert result.exit_code == 1

        result = runner.invoke(app, ["delete-backup", location, "--yes"], env=cli_env)
        assert result.exit_code == 0
        assert len(backups(tmp_path)) == 2

    def test_cleanup_without_graphs(self, cli_env: dict[str, str]) -> None:
        env = {**cli_env, "CLEANUP_GRAPHS": ""}

        result = runner.invoke(app, ["cleanup"], env=env)

        assert result.exit_code == 1

    def test_orphans_report(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["orphans", "--graph", GRAPH], env=cli_env)

        assert result.exit_code == 0
        assert "ObservationSet" in result.stdout

    def test_settings_guard_without_callback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli_main, "settings", None)

        with pytest.raises(typer.Exit):
            cli_main._settings()

    def test_list_backups_empty(self, cli_env: dict[str, str]) -> None:
        result = runner.invoke(app, ["list-backups"], env=cli_env)

        assert result.exit_code == 0
        assert "No backups found" in result.stdout
