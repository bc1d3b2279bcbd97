"""
In-process triplestore over an rdflib Dataset.

Used for local runs against a TriG/N-Quads file and as the backend of the
round-trip tests. Transactions are snapshots of the whole dataset: begin
copies every named graph, rollback swaps the copy back in.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any

import structlog
from rdflib import Dataset, URIRef
from rdflib.util import guess_format

from cube_cleanup.core.exceptions import TriplestoreError
from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import QueryResult, TriplestoreAdapter

logger = structlog.get_logger(__name__)


class InMemoryTriplestore(TriplestoreAdapter):
    """
    rdflib-backed adapter.

    Usage:
        store = InMemoryTriplestore()
        await store.bulk_load("https://example.org/graph", ntriples)
        result = await store.query(queries.count_all_query("https://example.org/graph"))

    Args:
        dataset: Existing dataset to operate on (a new one by default)
        path: Optional TriG/N-Quads file loaded on creation and written back on close
        transactional: Whether snapshot transactions are advertised
    """

    kind = "memory"

    def __init__(
        self,
        dataset: Dataset | None = None,
        path: str | Path | None = None,
        transactional: bool = True,
    ) -> None:
        self.dataset = dataset if dataset is not None else Dataset()
        self.path = Path(path) if path else None
        self.supports_transactions = transactional
        self._snapshots: dict[str, list[tuple[Any, list]]] = {}
        self._dirty = False

        if self.path is not None and self.path.exists():
            self.dataset.parse(str(self.path), format=guess_format(str(self.path)) or "trig")
            logger.info("Loaded dataset from file", path=str(self.path), triples=len(self.dataset))

    @classmethod
    def from_settings(cls, settings: Any) -> "InMemoryTriplestore":
        """The query endpoint names the backing file for the memory kind."""
        endpoint = settings.query_endpoint or ""
        path = endpoint.removeprefix("file://") if not endpoint.startswith("http") else None
        return cls(path=path)

    # =========================================================================
    # SPARQL
    # =========================================================================

    def _query_sync(self, sparql: str):
        try:
            return self.dataset.query(sparql)
        except Exception as e:
            raise TriplestoreError(f"memory query failed: {e}") from e

    async def query(self, sparql: str, transaction_id: str | None = None) -> QueryResult:
        result = await asyncio.to_thread(self._query_sync, sparql)
        if result.type == "ASK":
            return QueryResult(boolean=bool(result.askAnswer))
        rows = []
        for row in result:
            rows.append({str(k): str(v) for k, v in row.asdict().items() if v is not None})
        return QueryResult(rows=rows)

    async def construct(self, sparql: str, transaction_id: str | None = None) -> str:
        result = await asyncio.to_thread(self._query_sync, sparql)
        if result.graph is None:
            raise TriplestoreError("memory construct did not return a graph")
        return await asyncio.to_thread(result.graph.serialize, format="nt")

    def _update_sync(self, sparql: str) -> None:
        try:
            self.dataset.update(sparql)
        except Exception as e:
            raise TriplestoreError(f"memory update failed: {e}") from e
        self._dirty = True

    async def update(self, sparql: str, transaction_id: str | None = None) -> None:
        await asyncio.to_thread(self._update_sync, sparql)

    def _bulk_load_sync(self, graph_uri: str, ntriples: str) -> None:
        try:
            self.dataset.graph(URIRef(graph_uri)).parse(data=ntriples, format="nt")
        except Exception as e:
            raise TriplestoreError(f"memory bulk load failed: {e}") from e
        self._dirty = True

    async def bulk_load(self, graph_uri: str, ntriples: str) -> None:
        validate_identifier(graph_uri, "graph")
        await asyncio.to_thread(self._bulk_load_sync, graph_uri, ntriples)

    def triple_count(self, graph_uri: str) -> int:
        return len(self.dataset.graph(URIRef(graph_uri)))

    # =========================================================================
    # Snapshot transactions
    # =========================================================================

    def _snapshot(self) -> list[tuple[Any, list]]:
        return [(g.identifier, list(g.triples((None, None, None)))) for g in self.dataset.graphs()]

    async def begin_transaction(self) -> str:
        if not self.supports_transactions:
            return await super().begin_transaction()
        transaction_id = uuid.uuid4().hex
        self._snapshots[transaction_id] = await asyncio.to_thread(self._snapshot)
        return transaction_id

    async def commit_transaction(self, transaction_id: str) -> None:
        if self._snapshots.pop(transaction_id, None) is None:
            raise TriplestoreError(f"Unknown transaction: {transaction_id}")

    async def rollback_transaction(self, transaction_id: str) -> None:
        snapshot = self._snapshots.pop(transaction_id, None)
        if snapshot is None:
            raise TriplestoreError(f"Unknown transaction: {transaction_id}")
        restored = Dataset()
        for identifier, triples in snapshot:
            graph = restored.graph(identifier)
            for triple in triples:
                graph.add(triple)
        self.dataset = restored
        logger.warning("Transaction rolled back", transaction_id=transaction_id)

    async def close(self) -> None:
        if self.path is not None and self._dirty:
            await asyncio.to_thread(
                self.dataset.serialize, destination=str(self.path), format=guess_format(str(self.path)) or "trig"
            )
            logger.info("Wrote dataset back to file", path=str(self.path))
            self._dirty = False
