"""
Cube Restore.

Loads a backed-up cube closure into a named graph:
- Recover the cube IRI from the payload
- Refuse to clobber an existing cube unless overwrite is requested
- Bulk load the payload
- Validate that the cube is queryable afterwards
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from cube_cleanup.core.exceptions import ConflictError, ExtractionError, ValidationError
from cube_cleanup.graph.backup.base import BackupRecord, BackupStore, count_triples, find_cube_uri
from cube_cleanup.graph.lifecycle.cleanup import CubePreview
from cube_cleanup.graph.lifecycle.deleter import CubeDeleter
from cube_cleanup.graph.sparql import queries
from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import TriplestoreAdapter
from cube_cleanup.observability.logging import LogContext

logger = structlog.get_logger(__name__)


def extract_cube_uri(ntriples: str) -> str:
    """
    Find the cube IRI declared in an N-Triples payload.

    Raises:
        ExtractionError: If no `<x> rdf:type cube:Cube` line exists
        InvalidIdentifier: If the IRI found is not safe to query with
    """
    cube_uri = find_cube_uri(ntriples)
    if cube_uri is None:
        raise ExtractionError("Could not extract cube URI from backup: no cube:Cube type triple")
    return validate_identifier(cube_uri, "cube")


@dataclass
class RestoreResult:
    """Outcome of restoring one backup."""

    backup: str
    graph_uri: str
    cube_uri: str
    triple_count: int
    dry_run: bool = False
    overwritten: bool = False
    validated: bool = False
    preview: CubePreview | None = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "backup": self.backup,
            "graph_uri": self.graph_uri,
            "cube_uri": self.cube_uri,
            "triple_count": self.triple_count,
            "dry_run": self.dry_run,
            "overwritten": self.overwritten,
            "validated": self.validated,
            "preview": self.preview.to_dict() if self.preview else None,
            "completed_at": self.completed_at.isoformat(),
        }


@dataclass
class RestoreItem:
    """One entry of a batch restore."""

    backup: str
    graph_uri: str
    overwrite: bool = False
    dry_run: bool = False
    validate: bool = True


@dataclass
class BatchRestoreResult:
    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r["success"])

    @property
    def failed(self) -> int:
        return self.total - self.successful

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "results": self.results,
        }


class RestoreOrchestrator:
    """
    Restores cube backups into a triplestore.

    Usage:
        ```python
        restorer = RestoreOrchestrator(adapter, backup_store)
        result = await restorer.restore(
            "lindas.admin.ch/my_cube/v3_2026-01-01T00-00-00-000000Z.nt",
            "https://lindas.admin.ch/foen/cube",
            overwrite=True,
        )
        ```
    """

    def __init__(
        self,
        adapter: TriplestoreAdapter,
        backup_store: BackupStore,
        max_delete_passes: int = 10,
    ) -> None:
        self._adapter = adapter
        self._backup_store = backup_store
        self._deleter = CubeDeleter(adapter)
        self.max_delete_passes = max_delete_passes

    async def restore(
        self,
        backup: str,
        graph_uri: str,
        overwrite: bool = False,
        dry_run: bool = False,
        validate: bool = True,
    ) -> RestoreResult:
        """
        Restore one backup into a graph.

        Args:
            backup: Backup location as reported by the store
            graph_uri: Target named graph
            overwrite: Delete an existing copy of the cube first
            dry_run: Report what would happen without changing anything
            validate: Check the cube is queryable after loading

        Returns:
            RestoreResult

        Raises:
            BackupNotFound: If the backup does not exist
            ExtractionError: If the payload declares no cube
            ConflictError: If the cube exists and overwrite is False
            ValidationError: If the loaded cube cannot be found afterwards
                (the load is not undone)
        """
        validate_identifier(graph_uri, "graph")

        with LogContext(graph=graph_uri, backup=backup):
            logger.info("Starting restore", overwrite=overwrite, dry_run=dry_run)

            ntriples = await self._backup_store.load(backup)
            triple_count = count_triples(ntriples)
            logger.info("Backup loaded", triples=triple_count)

            cube_uri = extract_cube_uri(ntriples)
            logger.info("Detected cube URI", cube=cube_uri)

            result = RestoreResult(
                backup=backup,
                graph_uri=graph_uri,
                cube_uri=cube_uri,
                triple_count=triple_count,
                dry_run=dry_run,
            )

            if await self._deleter.exists(graph_uri, cube_uri):
                if not overwrite:
                    raise ConflictError(cube_uri)
                logger.warning("Cube exists, will be overwritten", cube=cube_uri)
                result.overwritten = True
                if not dry_run:
                    await self._deleter.purge(graph_uri, cube_uri, max_passes=self.max_delete_passes)

            if dry_run:
                logger.info("[DRY RUN] Would restore cube", cube=cube_uri, triples=triple_count)
                return result

            await self._adapter.bulk_load(graph_uri, ntriples)

            if validate:
                result.preview = await self.validate_restore(graph_uri, cube_uri)
                result.validated = True

            logger.info("Restore completed", cube=cube_uri, triples=triple_count)
            return result

    async def validate_restore(self, graph_uri: str, cube_uri: str) -> CubePreview:
        """
        Raises:
            ValidationError: If the cube is missing or yields no preview
        """
        if not await self._deleter.exists(graph_uri, cube_uri):
            raise ValidationError(f"Restore validation failed: cube {cube_uri} does not exist")

        result = await self._adapter.query(queries.preview_query(graph_uri, cube_uri))
        if not result.rows:
            raise ValidationError(f"Restore validation failed: no preview for cube {cube_uri}")

        preview = CubePreview.from_row(cube_uri, result.rows[0])
        logger.info("Restore validation", cube=cube_uri, observations=preview.observation_count)
        return preview

    async def restore_batch(self, items: list[RestoreItem]) -> BatchRestoreResult:
        """Restore several backups in order. A failing item never stops the batch."""
        batch = BatchRestoreResult()
        for item in items:
            try:
                result = await self.restore(
                    item.backup,
                    item.graph_uri,
                    overwrite=item.overwrite,
                    dry_run=item.dry_run,
                    validate=item.validate,
                )
                batch.results.append({"backup": item.backup, "success": True, "result": result.to_dict()})
            except Exception as e:
                logger.error("Restore failed", backup=item.backup, error=str(e))
                batch.results.append({"backup": item.backup, "success": False, "error": str(e)})

        logger.info("Batch restore completed", total=batch.total, successful=batch.successful, failed=batch.failed)
        return batch

    async def list_available_backups(self, name_filter: str | None = None) -> list[BackupRecord]:
        return await self._backup_store.list(name_filter)
