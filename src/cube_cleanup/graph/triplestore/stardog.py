"""
Stardog adapter.

Stardog exposes explicit transactions, so this is the one HTTP adapter
that advertises supports_transactions:

- POST /{db}/transaction/begin            -> transaction id (text)
- POST /{db}/{tx}/query | /{db}/{tx}/update
- POST /{db}/{tx}/add?graph-uri=<uri>     (bulk load inside a transaction)
- POST /{db}/transaction/commit/{tx} | /{db}/transaction/rollback/{tx}
"""

import re

import structlog

from cube_cleanup.core.exceptions import TriplestoreError
from cube_cleanup.graph.sparql.identifiers import validate_identifier
from cube_cleanup.graph.triplestore.base import N_TRIPLES, HttpTriplestoreAdapter

logger = structlog.get_logger(__name__)

_DATABASE = re.compile(r"^(.*)/([^/]+)/query/?$")


class StardogAdapter(HttpTriplestoreAdapter):
    """
    Stardog over its HTTP API.

    Usage:
        adapter = StardogAdapter("http://localhost:5820/cubes/query",
                                 auth_type="basic", username="admin", password="admin")
        tx = await adapter.begin_transaction()
        await adapter.update(sparql, transaction_id=tx)
        await adapter.commit_transaction(tx)
    """

    kind = "stardog"
    supports_transactions = True

    def __init__(self, query_endpoint: str, update_endpoint: str | None = None, **kwargs) -> None:
        match = _DATABASE.match(query_endpoint)
        if match is None:
            raise ValueError(f"Could not determine Stardog database from endpoint: {query_endpoint}")
        self.base_url, self.database = match.group(1), match.group(2)
        super().__init__(
            query_endpoint=query_endpoint,
            update_endpoint=update_endpoint or f"{self.base_url}/{self.database}/update",
            **kwargs,
        )

    @property
    def database_url(self) -> str:
        return f"{self.base_url}/{self.database}"

    def query_url(self, transaction_id: str | None = None) -> str:
        if transaction_id:
            return f"{self.database_url}/{transaction_id}/query"
        return self.query_endpoint

    def update_url(self, transaction_id: str | None = None) -> str:
        if transaction_id:
            return f"{self.database_url}/{transaction_id}/update"
        return self.update_endpoint

    async def begin_transaction(self) -> str:
        response = await self._request("POST", f"{self.database_url}/transaction/begin", "begin transaction")
        transaction_id = response.text.strip()
        if not transaction_id:
            raise TriplestoreError("Stardog returned an empty transaction id")
        logger.debug("Transaction started", database=self.database, transaction_id=transaction_id)
        return transaction_id

    async def commit_transaction(self, transaction_id: str) -> None:
        await self._request("POST", f"{self.database_url}/transaction/commit/{transaction_id}", "commit")
        logger.debug("Transaction committed", database=self.database, transaction_id=transaction_id)

    async def rollback_transaction(self, transaction_id: str) -> None:
        await self._request("POST", f"{self.database_url}/transaction/rollback/{transaction_id}", "rollback")
        logger.warning("Transaction rolled back", database=self.database, transaction_id=transaction_id)

    async def bulk_load(self, graph_uri: str, ntriples: str) -> None:
        validate_identifier(graph_uri, "graph")
        logger.debug("Bulk loading to Stardog", database=self.database, graph=graph_uri, size=len(ntriples))
        transaction_id = await self.begin_transaction()
        try:
            await self._request(
                "POST",
                f"{self.database_url}/{transaction_id}/add",
                "bulk load",
                content=ntriples,
                headers={"Content-Type": N_TRIPLES},
                params={"graph-uri": graph_uri},
            )
        except Exception:
            try:
                await self.rollback_transaction(transaction_id)
            except Exception as rollback_error:
                logger.error(
                    "Rollback failed",
                    database=self.database,
                    transaction_id=transaction_id,
                    error=str(rollback_error),
                )
            raise
        await self.commit_transaction(transaction_id)
