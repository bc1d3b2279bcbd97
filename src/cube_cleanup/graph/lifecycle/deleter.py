"""
Phased cube deletion.

A cube closure is removed in three ordered updates:

1. observation triples and references to observations (membership links stay)
2. observation set -> observation membership links
3. the remainder of the closure (cube, shapes, lists, sets)

Afterwards the cube must no longer exist. On transactional backends the
phases run inside one transaction and any failure rolls it back.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from cube_cleanup.core.exceptions import CubeCleanupError, PostDeleteExistenceError
from cube_cleanup.graph.sparql import queries
from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import TriplestoreAdapter

logger = structlog.get_logger(__name__)


@dataclass
class DeleteOutcome:
    """Result of deleting one cube."""

    graph_uri: str
    cube_uri: str
    triples_deleted: int = 0
    remaining_observations: int = 0
    transactional: bool = False
    passes: int = 1
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "graph_uri": self.graph_uri,
            "cube_uri": self.cube_uri,
            "triples_deleted": self.triples_deleted,
            "remaining_observations": self.remaining_observations,
            "transactional": self.transactional,
            "passes": self.passes,
            "warnings": self.warnings,
        }


class CubeDeleter:
    """
    Deletes the closure of a single cube version.

    Usage:
        deleter = CubeDeleter(adapter)
        outcome = await deleter.delete_cube(graph_uri, cube_uri)
        print(outcome.triples_deleted)
    """

    def __init__(self, adapter: TriplestoreAdapter) -> None:
        self._adapter = adapter

    async def exists(self, graph_uri: str, cube_uri: str, transaction_id: str | None = None) -> bool:
        result = await self._adapter.query(queries.exists_query(graph_uri, cube_uri), transaction_id=transaction_id)
        return bool(result.boolean)

    async def count_closure(self, graph_uri: str, cube_uri: str, transaction_id: str | None = None) -> int:
        result = await self._adapter.query(
            queries.count_closure_query(graph_uri, cube_uri), transaction_id=transaction_id
        )
        return result.first_int("count")

    async def count_observations(self, graph_uri: str, cube_uri: str, transaction_id: str | None = None) -> int:
        result = await self._adapter.query(
            queries.count_observations_query(graph_uri, cube_uri), transaction_id=transaction_id
        )
        return result.first_int("count")

    async def _run_phases(self, outcome: DeleteOutcome, transaction_id: str | None) -> None:
        graph_uri, cube_uri = outcome.graph_uri, outcome.cube_uri

        logger.debug("Deleting observations", cube=cube_uri)
        await self._adapter.update(
            queries.delete_observations_query(graph_uri, cube_uri), transaction_id=transaction_id
        )

        remaining = await self.count_observations(graph_uri, cube_uri, transaction_id)
        outcome.remaining_observations = remaining
        if remaining:
            message = f"{remaining} observations still carry triples after the observation delete"
            outcome.warnings.append(message)
            logger.warning("Observations remain after delete", cube=cube_uri, remaining=remaining)

        logger.debug("Deleting observation links", cube=cube_uri)
        await self._adapter.update(queries.delete_links_query(graph_uri, cube_uri), transaction_id=transaction_id)

        logger.debug("Deleting cube metadata", cube=cube_uri)
        await self._adapter.update(
            queries.delete_metadata_query(graph_uri, cube_uri), transaction_id=transaction_id
        )

        if await self.exists(graph_uri, cube_uri, transaction_id):
            raise PostDeleteExistenceError(cube_uri)

    async def delete_cube(self, graph_uri: str, cube_uri: str) -> DeleteOutcome:
        """
        Delete the closure of one cube.

        Args:
            graph_uri: Named graph holding the cube
            cube_uri: Cube to delete

        Returns:
            DeleteOutcome; triples_deleted is the closure size measured
            before deletion, 0 when there was nothing to delete

        Raises:
            InvalidIdentifier: If either identifier is unsafe
            PostDeleteExistenceError: If the cube survives the three phases
        """
        validate_identifier(graph_uri, "graph")
        validate_identifier(cube_uri, "cube")

        outcome = DeleteOutcome(
            graph_uri=graph_uri,
            cube_uri=cube_uri,
            transactional=self._adapter.supports_transactions,
        )

        closure_size = await self.count_closure(graph_uri, cube_uri)
        if closure_size == 0:
            logger.info("Nothing to delete", graph=graph_uri, cube=cube_uri)
            return outcome

        transaction_id = None
        if self._adapter.supports_transactions:
            transaction_id = await self._adapter.begin_transaction()
        else:
            logger.warning(
                "Backend is not transactional; an interrupted delete can leave a partial cube",
                cube=cube_uri,
            )

        try:
            await self._run_phases(outcome, transaction_id)
            if transaction_id is not None:
                await self._adapter.commit_transaction(transaction_id)
        except Exception as e:
            if transaction_id is not None:
                try:
                    await self._adapter.rollback_transaction(transaction_id)
                except Exception as rollback_error:
                    logger.error(
                        "Rollback failed",
                        cube=cube_uri,
                        transaction_id=transaction_id,
                        error=str(rollback_error),
                    )
            logger.error("Cube deletion failed", graph=graph_uri, cube=cube_uri, error=str(e))
            raise

        outcome.triples_deleted = closure_size
        logger.info("Cube deleted", graph=graph_uri, cube=cube_uri, triples=closure_size)
        return outcome

    async def purge(self, graph_uri: str, cube_uri: str, max_passes: int = 10) -> DeleteOutcome:
        """
        Repeat delete_cube until neither the cube nor its observations remain.

        Raises:
            CubeCleanupError: If the cube is still present after max_passes
        """
        total = DeleteOutcome(graph_uri=graph_uri, cube_uri=cube_uri, passes=0)

        for attempt in range(1, max_passes + 1):
            outcome = await self.delete_cube(graph_uri, cube_uri)
            total.passes = attempt
            total.triples_deleted += outcome.triples_deleted
            total.transactional = outcome.transactional
            total.warnings.extend(outcome.warnings)

            remaining = await self.count_observations(graph_uri, cube_uri)
            total.remaining_observations = remaining
            if remaining == 0 and not await self.exists(graph_uri, cube_uri):
                return total
            logger.warning("Cube not fully removed, retrying", cube=cube_uri, attempt=attempt, remaining=remaining)

        raise CubeCleanupError(f"Cube {cube_uri} still present after {max_passes} delete passes")
