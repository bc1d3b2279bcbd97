"""
Ontotext GraphDB adapter.

Queries go to /repositories/{repo}; updates and bulk loads go to
/repositories/{repo}/statements, with the named graph passed as the
`context` parameter.
"""

import re

import structlog

from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import N_TRIPLES, HttpTriplestoreAdapter

logger = structlog.get_logger(__name__)

_REPOSITORY = re.compile(r"/repositories/([^/]+)/?$")


class GraphDBAdapter(HttpTriplestoreAdapter):
    kind = "graphdb"

    def __init__(self, query_endpoint: str, update_endpoint: str | None = None,
                 graph_store_endpoint: str | None = None, **kwargs) -> None:
        query_endpoint = query_endpoint.rstrip("/")
        match = _REPOSITORY.search(query_endpoint)
        self.repository = match.group(1) if match else None
        statements = update_endpoint or f"{query_endpoint}/statements"
        super().__init__(
            query_endpoint=query_endpoint,
            update_endpoint=statements,
            graph_store_endpoint=graph_store_endpoint or statements,
            **kwargs,
        )

    async def bulk_load(self, graph_uri: str, ntriples: str) -> None:
        validate_identifier(graph_uri, "graph")
        logger.debug("Bulk loading to GraphDB", repository=self.repository, graph=graph_uri, size=len(ntriples))
        await self._request(
            "POST",
            self.graph_store_endpoint,
            "bulk load",
            content=ntriples,
            headers={"Content-Type": N_TRIPLES},
            params={"context": f"<{graph_uri}>"},
        )
