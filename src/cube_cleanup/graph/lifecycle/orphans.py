"""
Orphan detection and cleanup.

An orphan is an auxiliary object nothing live points at any more:
- ObservationSet: no cube lists it as cube:observationSet
- NodeShape: no cube uses it as cube:observationConstraint
- PropertyShape: no shape lists it as sh:property
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from cube_cleanup.graph.sparql import queries
from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import TriplestoreAdapter

logger = structlog.get_logger(__name__)


class OrphanCategory(str, Enum):
    OBSERVATION_SET = "ObservationSet"
    NODE_SHAPE = "NodeShape"
    PROPERTY_SHAPE = "PropertyShape"


def _empty_summary() -> dict[str, int]:
    return {category.value: 0 for category in OrphanCategory}


@dataclass
class OrphanDetails:
    """Largest orphans of a graph, per kind."""

    observation_sets: list[dict[str, Any]] = field(default_factory=list)
    shapes: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"observation_sets": self.observation_sets, "shapes": self.shapes}


@dataclass
class OrphanCleanupResult:
    """Outcome of one orphan cleanup."""

    graph_uri: str
    dry_run: bool = False
    skipped: bool = False
    before: dict[str, int] = field(default_factory=_empty_summary)
    after: dict[str, int] = field(default_factory=_empty_summary)
    triples_deleted: int = 0

    @property
    def deleted(self) -> dict[str, int]:
        return {key: self.before.get(key, 0) - self.after.get(key, 0) for key in self.before}

    @property
    def total_before(self) -> int:
        return sum(self.before.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "graph_uri": self.graph_uri,
            "dry_run": self.dry_run,
            "skipped": self.skipped,
            "before": self.before,
            "after": self.after,
            "deleted": self.deleted,
            "triples_deleted": self.triples_deleted,
        }


class OrphanManager:
    """
    Finds and removes orphaned observation sets and shapes.

    Usage:
        manager = OrphanManager(adapter)
        summary = await manager.find_orphans_summary(graph_uri)
        result = await manager.cleanup_orphans(graph_uri)
    """

    def __init__(self, adapter: TriplestoreAdapter) -> None:
        self._adapter = adapter

    async def find_orphans_summary(self, graph_uri: str) -> dict[str, int]:
        """Orphan count per category; categories without orphans report 0."""
        result = await self._adapter.query(queries.orphan_summary_query(graph_uri))
        summary = _empty_summary()
        for row in result.rows:
            kind = row.get("orphanType")
            if kind in summary:
                summary[kind] = int(float(row.get("count", "0")))
        return summary

    async def find_orphan_details(self, graph_uri: str) -> OrphanDetails:
        sets = await self._adapter.query(queries.orphan_sets_detail_query(graph_uri))
        shapes = await self._adapter.query(queries.orphan_shapes_detail_query(graph_uri))
        return OrphanDetails(
            observation_sets=[
                {"uri": row["orphanSet"], "observation_count": int(float(row.get("observationCount", "0")))}
                for row in sets.rows
            ],
            shapes=[
                {
                    "uri": row["orphanShape"],
                    "type": row.get("shapeType"),
                    "triple_count": int(float(row.get("tripleCount", "0"))),
                }
                for row in shapes.rows
            ],
        )

    async def cleanup_orphans(self, graph_uri: str, dry_run: bool = False) -> OrphanCleanupResult:
        """
        Delete every orphan of a graph with a single update.

        Running it twice deletes nothing the second time.

        Args:
            graph_uri: Named graph to clean
            dry_run: Only report what would be deleted

        Returns:
            OrphanCleanupResult with before/after counts per category
        """
        validate_identifier(graph_uri, "graph")
        result = OrphanCleanupResult(graph_uri=graph_uri, dry_run=dry_run)

        result.before = await self.find_orphans_summary(graph_uri)
        logger.info("Orphans found", graph=graph_uri, **result.before)

        if result.total_before == 0:
            result.skipped = True
            result.after = dict(result.before)
            logger.info("No orphans to clean up", graph=graph_uri)
            return result

        if dry_run:
            result.after = dict(result.before)
            logger.info("[DRY RUN] Would delete orphans", graph=graph_uri, total=result.total_before)
            return result

        before_triples = await self._count_all(graph_uri)
        await self._adapter.update(queries.orphan_delete_query(graph_uri))
        result.triples_deleted = max(before_triples - await self._count_all(graph_uri), 0)

        result.after = await self.find_orphans_summary(graph_uri)
        logger.info(
            "Orphan cleanup completed",
            graph=graph_uri,
            triples_deleted=result.triples_deleted,
            **{f"deleted_{k}": v for k, v in result.deleted.items()},
        )
        return result

    async def _count_all(self, graph_uri: str) -> int:
        result = await self._adapter.query(queries.count_all_query(graph_uri))
        return result.first_int("count")
