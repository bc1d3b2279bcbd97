"""
Apache Jena Fuseki adapter.

Endpoints follow the dataset layout:
- /{dataset}/query or /{dataset}/sparql for queries
- /{dataset}/update for updates
- /{dataset}/data?graph=<uri> for the Graph Store Protocol
"""

import re

import structlog

from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import N_TRIPLES, HttpTriplestoreAdapter

logger = structlog.get_logger(__name__)

_QUERY_SUFFIX = re.compile(r"/(query|sparql)/?$")


class FusekiAdapter(HttpTriplestoreAdapter):
    """Fuseki over SPARQL 1.1 Protocol and Graph Store Protocol."""

    kind = "fuseki"

    def __init__(self, query_endpoint: str, update_endpoint: str | None = None,
                 graph_store_endpoint: str | None = None, **kwargs) -> None:
        dataset_url = _QUERY_SUFFIX.sub("", query_endpoint)
        super().__init__(
            query_endpoint=query_endpoint,
            update_endpoint=update_endpoint or f"{dataset_url}/update",
            graph_store_endpoint=graph_store_endpoint or f"{dataset_url}/data",
            **kwargs,
        )

    async def bulk_load(self, graph_uri: str, ntriples: str) -> None:
        validate_identifier(graph_uri, "graph")
        logger.debug("Bulk loading to Fuseki", graph=graph_uri, size=len(ntriples))
        await self._request(
            "POST",
            self.graph_store_endpoint,
            "bulk load",
            content=ntriples,
            headers={"Content-Type": N_TRIPLES},
            params={"graph": graph_uri},
        )
