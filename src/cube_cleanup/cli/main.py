"""Command line entry point using Typer."""

import asyncio
import json
from typing import Any, Coroutine, List, Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from cube_cleanup import __version__
from cube_cleanup.config.settings import Settings, load_settings
from cube_cleanup.core.exceptions import CubeCleanupError
from cube_cleanup.graph.backup.factory import create_backup_store
from cube_cleanup.graph.lifecycle.cleanup import CleanupConfig, CleanupOrchestrator, CleanupStats
from cube_cleanup.graph.lifecycle.orphans import OrphanManager
from cube_cleanup.graph.lifecycle.restore import RestoreOrchestrator
from cube_cleanup.graph.triplestore.factory import create_adapter, detect_kind
from cube_cleanup.observability.logging import configure_logging

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="cube-cleanup",
    help="Cube Cleanup Service - version cleanup, backup and restore for RDF Data Cubes",
    add_completion=False,
)

console = Console()

# Populated by the callback before any command runs
settings: Optional[Settings] = None


def _settings() -> Settings:
    if settings is None:
        console.print("✗ Settings were not loaded", style="bold red")
        raise typer.Exit(code=1)
    return settings


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine, turning service errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except (CubeCleanupError, ValueError, FileNotFoundError) as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)


def _graphs(graph: Optional[List[str]]) -> list[str]:
    graphs = list(graph or _settings().cleanup.graphs)
    if not graphs:
        console.print("✗ No graphs given. Use --graph or CLEANUP_GRAPHS.", style="bold red")
        raise typer.Exit(code=1)
    return graphs


@app.callback()
def main(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="JSON config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Cube Cleanup Service."""
    global settings

    try:
        settings = load_settings(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"✗ Invalid configuration: {e}", style="bold red")
        raise typer.Exit(code=1)

    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        format=settings.observability.log_format,
        log_file=settings.observability.log_file,
    )


@app.command()
def version():
    """Show version information."""
    console.print(f"cube-cleanup version {__version__}")


# =============================================================================
# Cleanup
# =============================================================================


@app.command()
def cleanup(
    graph: Optional[List[str]] = typer.Option(None, "--graph", "-g", help="Named graph to clean (repeatable)"),
    keep: Optional[int] = typer.Option(None, "--keep", "-k", min=1, help="Versions to keep per cube"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without deleting"),
    no_backup: bool = typer.Option(False, "--no-backup", help="Delete without taking backups"),
    fast: bool = typer.Option(False, "--fast", help="One bulk delete per graph, no backups"),
):
    """Delete superseded cube versions."""
    s = _settings()
    config = CleanupConfig.from_settings(s)
    if keep is not None:
        config.versions_to_keep = keep
    config.dry_run = config.dry_run or dry_run
    config.backup_enabled = config.backup_enabled and not no_backup

    _report(_run(_run_cleanup(s, config, _graphs(graph), fast=fast)))


@app.command()
def preview(
    graph: Optional[List[str]] = typer.Option(None, "--graph", "-g", help="Named graph to check (repeatable)"),
    keep: Optional[int] = typer.Option(None, "--keep", "-k", min=1, help="Versions to keep per cube"),
):
    """Show what a cleanup would delete, without changing anything."""
    s = _settings()
    config = CleanupConfig.from_settings(s)
    if keep is not None:
        config.versions_to_keep = keep
    config.dry_run = True

    _report(_run(_run_cleanup(s, config, _graphs(graph))))


async def _run_cleanup(s: Settings, config: CleanupConfig, graphs: list[str], fast: bool = False) -> CleanupStats:
    async with create_adapter(s.triplestore) as adapter:
        store = create_backup_store(s.backup) if config.backup_enabled else None
        orchestrator = CleanupOrchestrator(adapter, store, config)
        if fast:
            return await orchestrator.run_fast_path(graphs)
        return await orchestrator.run(graphs)


def _report(stats: CleanupStats) -> None:
    table = Table(title="Cleanup Summary" + (" (dry run)" if stats.dry_run else ""))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key in (
        "graphs_processed", "cubes_identified", "cubes_deleted", "cubes_skipped",
        "backups_created", "backups_expired", "triples_deleted",
    ):
        table.add_row(key.replace("_", " ").capitalize(), str(getattr(stats, key)))
    table.add_row("Duration (s)", f"{stats.duration_seconds:.1f}")
    console.print(table)

    if stats.errors:
        console.print(f"✗ {len(stats.errors)} error(s):", style="bold red")
        for error in stats.errors:
            target = error.get("cube") or error.get("graph") or error.get("phase", "")
            console.print(f"  {target}: {error['error']}")
        raise typer.Exit(code=1)


@app.command()
def inspect(
    cube: str = typer.Argument(..., help="Cube IRI"),
    graph: str = typer.Option(..., "--graph", "-g", help="Named graph"),
):
    """Show component counts of one cube."""
    s = _settings()

    async def _inspect():
        async with create_adapter(s.triplestore) as adapter:
            return await CleanupOrchestrator(adapter).preview_cube(graph, cube)

    result = _run(_inspect())
    if not result.exists:
        console.print(f"✗ Cube not found: {cube}", style="bold red")
        raise typer.Exit(code=1)

    table = Table(title=result.title or cube, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Cube", cube)
    table.add_row("Created", result.date_created or "-")
    table.add_row("Shapes", str(result.shape_count))
    table.add_row("Property shapes", str(result.property_count))
    table.add_row("Observation sets", str(result.observation_set_count))
    table.add_row("Observations", str(result.observation_count))
    console.print(table)


@app.command()
def versions(
    graph: str = typer.Option(..., "--graph", "-g", help="Named graph"),
    keep: Optional[int] = typer.Option(None, "--keep", "-k", min=1, help="Versions to keep per cube"),
):
    """List all cube versions of a graph and what a cleanup would do."""
    s = _settings()
    config = CleanupConfig.from_settings(s)
    if keep is not None:
        config.versions_to_keep = keep

    async def _versions():
        async with create_adapter(s.triplestore) as adapter:
            return await CleanupOrchestrator(adapter, config=config).list_versions(graph)

    report = _run(_versions())

    table = Table(title=f"Cube versions (keep {config.versions_to_keep})")
    table.add_column("Cube")
    table.add_column("Version", justify="right")
    table.add_column("Rank", justify="right")
    table.add_column("Action")
    table.add_column("Title")
    for row in report:
        style = "red" if row.action.value == "DELETE" else "green"
        table.add_row(
            row.cube_uri,
            str(row.version),
            str(row.rank) if row.rank is not None else "-",
            f"[{style}]{row.action.value}[/{style}]",
            row.title or "",
        )
    console.print(table)


@app.command()
def orphans(
    graph: str = typer.Option(..., "--graph", "-g", help="Named graph"),
    delete: bool = typer.Option(False, "--delete", help="Delete the orphans found"),
    dry_run: bool = typer.Option(False, "--dry-run", help="With --delete, only report"),
    details: bool = typer.Option(False, "--details", help="List the largest orphans"),
):
    """Find (and optionally delete) orphaned observation sets and shapes."""
    s = _settings()

    async def _orphans():
        async with create_adapter(s.triplestore) as adapter:
            manager = OrphanManager(adapter)
            if delete:
                return await manager.cleanup_orphans(graph, dry_run=dry_run), None
            summary = await manager.find_orphans_summary(graph)
            found = await manager.find_orphan_details(graph) if details else None
            return summary, found

    result, found = _run(_orphans())

    if delete:
        table = Table(title="Orphan cleanup" + (" (dry run)" if result.dry_run else ""))
        table.add_column("Category")
        table.add_column("Before", justify="right")
        table.add_column("After", justify="right")
        for category, before in result.before.items():
            table.add_row(category, str(before), str(result.after.get(category, 0)))
        console.print(table)
        console.print(f"Triples deleted: {result.triples_deleted}")
        return

    table = Table(title="Orphans")
    table.add_column("Category")
    table.add_column("Count", justify="right")
    for category, count in result.items():
        table.add_row(category, str(count))
    console.print(table)

    if found is not None:
        for item in found.observation_sets:
            console.print(f"  set   {item['uri']} ({item['observation_count']} observations)")
        for item in found.shapes:
            console.print(f"  shape {item['uri']} [{item['type']}] ({item['triple_count']} triples)")


# =============================================================================
# Backups
# =============================================================================


@app.command()
def restore(
    backup: str = typer.Argument(..., help="Backup location (see list-backups)"),
    graph: str = typer.Option(..., "--graph", "-g", help="Target named graph"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace the cube if it exists"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without restoring"),
    no_validate: bool = typer.Option(False, "--no-validate", help="Skip post-restore validation"),
):
    """Restore a cube from a backup."""
    s = _settings()

    async def _restore():
        async with create_adapter(s.triplestore) as adapter:
            restorer = RestoreOrchestrator(
                adapter, create_backup_store(s.backup), max_delete_passes=s.cleanup.max_delete_passes
            )
            return await restorer.restore(
                backup, graph, overwrite=overwrite, dry_run=dry_run, validate=not no_validate
            )

    result = _run(_restore())
    prefix = "[DRY RUN] Would restore" if result.dry_run else "✓ Restored"
    console.print(f"{prefix} {result.cube_uri} ({result.triple_count} triples) into {graph}", style="green")
    if result.overwritten:
        console.print("  Existing cube was replaced", style="yellow")


@app.command("list-backups")
def list_backups(
    name_filter: Optional[str] = typer.Option(None, "--filter", "-f", help="Cube name contains"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List stored backups, newest first."""
    s = _settings()

    async def _list():
        async with create_adapter(s.triplestore) as adapter:
            restorer = RestoreOrchestrator(adapter, create_backup_store(s.backup))
            return await restorer.list_available_backups(name_filter)

    records = _run(_list())

    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in records], indent=2))
        return

    if not records:
        console.print("No backups found.")
        return

    table = Table(title=f"Backups ({len(records)})")
    table.add_column("Domain")
    table.add_column("Cube")
    table.add_column("Version", justify="right")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    table.add_column("Location")
    for r in records:
        table.add_row(
            r.domain,
            r.cube_name,
            str(r.version),
            r.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"{r.size_bytes / 1024:.1f} KB",
            r.location,
        )
    console.print(table)


@app.command("delete-backup")
def delete_backup(
    location: str = typer.Argument(..., help="Backup location"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete one backup."""
    s = _settings()
    if not yes:
        typer.confirm(f"Delete backup {location}?", abort=True)

    _run(create_backup_store(s.backup).delete(location))
    console.print(f"✓ Deleted {location}", style="green")


@app.command("test-connection")
def test_connection():
    """Check that the triplestore answers queries."""
    s = _settings()
    endpoint = s.triplestore.query_endpoint
    detected = detect_kind(endpoint)
    if detected is not None and detected.value != s.triplestore.kind:
        console.print(
            f"! Endpoint looks like {detected.value} but kind is {s.triplestore.kind}", style="yellow"
        )

    async def _test():
        async with create_adapter(s.triplestore) as adapter:
            return await adapter.test_connection()

    if _run(_test()):
        console.print(f"✓ Connected to {s.triplestore.kind} at {endpoint}", style="green")
    else:
        console.print(f"✗ Cannot reach {s.triplestore.kind} at {endpoint}", style="bold red")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
