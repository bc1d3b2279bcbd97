"""
Cube Version Cleanup.

Removes superseded cube versions from named graphs:
- Identify versions beyond the newest N per cube family
- Preview component counts of each candidate
- Back up the closure of each candidate before deleting it
- Delete in three verified phases (see deleter)
- Sweep expired backups at the end of a run
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from cube_cleanup.core.exceptions import BackendUnavailable, EmptyExport
from cube_cleanup.graph.backup.base import BackupRecord, BackupStore, count_triples
from cube_cleanup.graph.lifecycle.deleter import CubeDeleter
from cube_cleanup.graph.lifecycle.selector import (
    Action,
    CubeVersion,
    DeletionPlan,
    partition,
    rank_versions,
)
from cube_cleanup.graph.sparql import queries
from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import TriplestoreAdapter
from cube_cleanup.observability.logging import LogContext

logger = structlog.get_logger(__name__)


@dataclass
class CleanupConfig:
    """Configuration for a cleanup run."""

    versions_to_keep: int = 2
    dry_run: bool = False
    backup_enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> "CleanupConfig":
        return cls(
            versions_to_keep=settings.cleanup.versions_to_keep,
            dry_run=settings.cleanup.dry_run,
            backup_enabled=settings.backup.enabled,
        )


@dataclass
class CleanupStats:
    """Statistics of one cleanup run. A new instance per run."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    dry_run: bool = False

    graphs_processed: int = 0
    cubes_identified: int = 0
    cubes_deleted: int = 0
    cubes_skipped: int = 0
    backups_created: int = 0
    backups_expired: int = 0
    triples_deleted: int = 0

    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    def add_error(self, error: Exception, **context: str) -> None:
        self.errors.append({**context, "error": str(error), "type": type(error).__name__})

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 2),
            "dry_run": self.dry_run,
            "graphs_processed": self.graphs_processed,
            "cubes_identified": self.cubes_identified,
            "cubes_deleted": self.cubes_deleted,
            "cubes_skipped": self.cubes_skipped,
            "backups_created": self.backups_created,
            "backups_expired": self.backups_expired,
            "triples_deleted": self.triples_deleted,
            "errors": self.errors,
        }


@dataclass
class CubePreview:
    """Component counts of one cube."""

    cube_uri: str
    exists: bool = False
    title: str | None = None
    date_created: str | None = None
    shape_count: int = 0
    property_count: int = 0
    observation_set_count: int = 0
    observation_count: int = 0

    @classmethod
    def from_row(cls, cube_uri: str, row: dict[str, str] | None) -> "CubePreview":
        if row is None:
            return cls(cube_uri=cube_uri)

        def as_int(key: str) -> int:
            return int(float(row.get(key, "0") or 0))

        return cls(
            cube_uri=cube_uri,
            exists=True,
            title=row.get("title"),
            date_created=row.get("dateCreated"),
            shape_count=as_int("shapeCount"),
            property_count=as_int("propertyCount"),
            observation_set_count=as_int("observationSetCount"),
            observation_count=as_int("observationCount"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cube_uri": self.cube_uri,
            "exists": self.exists,
            "title": self.title,
            "date_created": self.date_created,
            "shape_count": self.shape_count,
            "property_count": self.property_count,
            "observation_set_count": self.observation_set_count,
            "observation_count": self.observation_count,
        }


@dataclass
class CubeVersionInfo:
    """One row of the versions report."""

    cube_uri: str
    family: str
    version: int
    rank: int | None
    action: Action
    title: str | None = None
    date_created: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cube_uri": self.cube_uri,
            "family": self.family,
            "version": self.version,
            "rank": self.rank,
            "action": self.action.value,
            "title": self.title,
            "date_created": self.date_created,
        }


class CleanupOrchestrator:
    """
    Runs version cleanup over a list of named graphs.

    Usage:
        ```python
        orchestrator = CleanupOrchestrator(
            adapter=create_adapter(settings.triplestore),
            backup_store=create_backup_store(settings.backup),
            config=CleanupConfig(versions_to_keep=2),
        )

        stats = await orchestrator.run(["https://lindas.admin.ch/foen/cube"])
        if not stats.success:
            ...
        ```
    """

    def __init__(
        self,
        adapter: TriplestoreAdapter,
        backup_store: BackupStore | None = None,
        config: CleanupConfig | None = None,
    ) -> None:
        self._adapter = adapter
        self._backup_store = backup_store
        self.config = config or CleanupConfig()
        self._deleter = CubeDeleter(adapter)

    @property
    def backups_enabled(self) -> bool:
        return self.config.backup_enabled and self._backup_store is not None

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self, graphs: list[str]) -> CleanupStats:
        """
        Clean every graph in order.

        Per-cube and per-graph failures are recorded in the returned
        statistics. Invalid graph identifiers, an unreachable triplestore
        and an unusable backup store abort the run before anything is
        deleted.

        Args:
            graphs: Named graph IRIs

        Returns:
            CleanupStats for this run

        Raises:
            InvalidIdentifier: If a graph IRI is rejected
            BackendUnavailable: If the triplestore does not answer
            BackupStoreError: If the backup store cannot be initialized
        """
        for graph_uri in graphs:
            validate_identifier(graph_uri, "graph")

        logger.info(
            "Starting cube cleanup",
            graphs=len(graphs),
            versions_to_keep=self.config.versions_to_keep,
            dry_run=self.config.dry_run,
            backups=self.backups_enabled,
        )
        await self.check_backend()

        # Dry runs leave the backup store untouched
        if not self.config.dry_run:
            if self.backups_enabled:
                await self._backup_store.initialize()
            else:
                logger.warning("Backups are disabled; deleted cubes cannot be restored")

        stats = CleanupStats(dry_run=self.config.dry_run)
        try:
            for graph_uri in graphs:
                await self.process_graph(graph_uri, stats)

            if self.backups_enabled and not self.config.dry_run:
                try:
                    stats.backups_expired = await self._backup_store.cleanup_old_backups()
                except Exception as e:
                    logger.error("Backup retention sweep failed", error=str(e))
                    stats.add_error(e, phase="retention")
        finally:
            stats.finished_at = datetime.now(timezone.utc)
            self.log_summary(stats)

        return stats

    async def check_backend(self) -> None:
        """
        Raises:
            BackendUnavailable: If the triplestore does not answer a trivial query
        """
        if not await self._adapter.test_connection():
            raise BackendUnavailable(f"Triplestore ({self._adapter.kind}) is not reachable")
        logger.debug("Triplestore reachable", kind=self._adapter.kind)

    async def process_graph(self, graph_uri: str, stats: CleanupStats) -> None:
        logger.info("Processing graph", graph=graph_uri)
        stats.graphs_processed += 1

        try:
            plan = await self.identify_deletions(graph_uri)
        except Exception as e:
            logger.error("Error processing graph", graph=graph_uri, error=str(e))
            stats.add_error(e, graph=graph_uri, phase="identify")
            return

        stats.cubes_identified += len(plan.delete)
        if plan.is_empty:
            logger.info("No cubes to delete in graph", graph=graph_uri)
            return

        logger.info("Found cubes to delete", graph=graph_uri, count=len(plan.delete), kept=len(plan.keep))
        for version in plan.delete:
            await self.process_cube(graph_uri, version, stats)

    async def identify_deletions(self, graph_uri: str) -> DeletionPlan:
        query = queries.identify_deletions_query(graph_uri, self.config.versions_to_keep)
        result = await self._adapter.query(query)
        return partition(result.rows, self.config.versions_to_keep)

    async def process_cube(self, graph_uri: str, version: CubeVersion, stats: CleanupStats) -> None:
        cube_uri = version.cube_uri
        with LogContext(graph=graph_uri, cube=cube_uri):
            logger.info("Processing cube", version=version.version, rank=version.rank)
            try:
                preview = await self.preview_cube(graph_uri, cube_uri)

                if self.config.dry_run:
                    logger.info(
                        "[DRY RUN] Would delete cube",
                        observations=preview.observation_count,
                        shapes=preview.shape_count,
                    )
                    return

                if self.backups_enabled:
                    await self.backup_cube(graph_uri, cube_uri)
                    stats.backups_created += 1
                else:
                    logger.warning("Deleting cube without a backup")

                outcome = await self._deleter.delete_cube(graph_uri, cube_uri)
                stats.cubes_deleted += 1
                stats.triples_deleted += outcome.triples_deleted

            except EmptyExport as e:
                logger.warning("Empty backup for cube; delete skipped")
                stats.add_error(e, graph=graph_uri, cube=cube_uri, phase="backup")
                stats.cubes_skipped += 1
            except Exception as e:
                logger.error("Error processing cube", error=str(e))
                stats.add_error(e, graph=graph_uri, cube=cube_uri, phase="cube")
                stats.cubes_skipped += 1

    # =========================================================================
    # Single-cube operations
    # =========================================================================

    async def preview_cube(self, graph_uri: str, cube_uri: str) -> CubePreview:
        result = await self._adapter.query(queries.preview_query(graph_uri, cube_uri))
        return CubePreview.from_row(cube_uri, result.rows[0] if result.rows else None)

    async def backup_cube(self, graph_uri: str, cube_uri: str) -> BackupRecord:
        """
        Export the closure of a cube and save it.

        Raises:
            EmptyExport: If the export holds no triples
            BackupStoreError: If the store rejects the payload
        """
        logger.info("Backing up cube", cube=cube_uri)
        ntriples = await self._adapter.construct(queries.export_closure_query(graph_uri, cube_uri))
        if not ntriples or count_triples(ntriples) == 0:
            raise EmptyExport(cube_uri)

        record = await self._backup_store.save(cube_uri, ntriples)
        logger.info("Backup created", cube=cube_uri, location=record.location, triples=record.triple_count)
        return record

    # =========================================================================
    # Fast path
    # =========================================================================

    async def _count_all(self, graph_uri: str, transaction_id: str | None = None) -> int:
        result = await self._adapter.query(queries.count_all_query(graph_uri), transaction_id=transaction_id)
        return result.first_int("count")

    async def run_fast_path(self, graphs: list[str]) -> CleanupStats:
        """
        Delete old versions with one combined update per graph.

        No per-cube backups are taken. Triples deleted is the difference of
        the graph size before and after the update.
        """
        for graph_uri in graphs:
            validate_identifier(graph_uri, "graph")

        logger.warning(
            "Fast cleanup deletes old versions without per-cube backups",
            graphs=len(graphs),
            versions_to_keep=self.config.versions_to_keep,
        )
        await self.check_backend()

        stats = CleanupStats(dry_run=self.config.dry_run)
        try:
            for graph_uri in graphs:
                stats.graphs_processed += 1
                try:
                    await self._fast_path_graph(graph_uri, stats)
                except Exception as e:
                    logger.error("Fast cleanup failed for graph", graph=graph_uri, error=str(e))
                    stats.add_error(e, graph=graph_uri, phase="bulk_delete")
        finally:
            stats.finished_at = datetime.now(timezone.utc)
            self.log_summary(stats)

        return stats

    async def _fast_path_graph(self, graph_uri: str, stats: CleanupStats) -> None:
        plan = await self.identify_deletions(graph_uri)
        stats.cubes_identified += len(plan.delete)
        if plan.is_empty or self.config.dry_run:
            logger.info("Fast cleanup candidates", graph=graph_uri, count=len(plan.delete), dry_run=self.config.dry_run)
            return

        transaction_id = None
        if self._adapter.supports_transactions:
            transaction_id = await self._adapter.begin_transaction()

        try:
            before = await self._count_all(graph_uri, transaction_id)
            await self._adapter.update(
                queries.bulk_delete_old_versions_query(graph_uri, self.config.versions_to_keep),
                transaction_id=transaction_id,
            )
            after = await self._count_all(graph_uri, transaction_id)
            if transaction_id is not None:
                await self._adapter.commit_transaction(transaction_id)
        except Exception:
            if transaction_id is not None:
                try:
                    await self._adapter.rollback_transaction(transaction_id)
                except Exception as rollback_error:
                    logger.error("Rollback failed", graph=graph_uri, error=str(rollback_error))
            raise

        stats.cubes_deleted += len(plan.delete)
        stats.triples_deleted += max(before - after, 0)
        logger.info("Fast cleanup completed for graph", graph=graph_uri, triples_deleted=before - after)

    # =========================================================================
    # Reporting
    # =========================================================================

    async def list_versions(self, graph_uri: str) -> list[CubeVersionInfo]:
        """All cubes of a graph with their rank and the action a cleanup would take."""
        result = await self._adapter.query(queries.list_versions_query(graph_uri))

        details: dict[str, dict[str, str]] = {}
        for row in result.rows:
            details.setdefault(row["cube"], row)

        ranked, unversioned = rank_versions(details)
        keep = self.config.versions_to_keep
        report = [
            CubeVersionInfo(
                cube_uri=v.cube_uri,
                family=v.family,
                version=v.version,
                rank=v.rank,
                action=v.action(keep),
                title=details[v.cube_uri].get("title"),
                date_created=details[v.cube_uri].get("dateCreated"),
            )
            for v in ranked
        ]
        for uri in unversioned:
            report.append(CubeVersionInfo(
                cube_uri=uri,
                family=uri,
                version=0,
                rank=None,
                action=Action.KEEP,
                title=details[uri].get("title"),
                date_created=details[uri].get("dateCreated"),
            ))
        return report

    def log_summary(self, stats: CleanupStats) -> None:
        logger.info(
            "Cleanup summary",
            duration_seconds=round(stats.duration_seconds, 2),
            graphs_processed=stats.graphs_processed,
            cubes_identified=stats.cubes_identified,
            cubes_deleted=stats.cubes_deleted,
            cubes_skipped=stats.cubes_skipped,
            backups_created=stats.backups_created,
            triples_deleted=stats.triples_deleted,
            errors=len(stats.errors),
            dry_run=stats.dry_run,
        )
        for error in stats.errors:
            logger.warning("Cleanup error", **error)
