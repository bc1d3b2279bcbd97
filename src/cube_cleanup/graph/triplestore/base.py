"""
Triplestore Adapter Interface.

Every backend is reached through TriplestoreAdapter. Results are
normalized to QueryResult so orchestrators never see backend-specific
JSON. Transaction capability is an explicit class attribute.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from cube_cleanup.core.exceptions import BackendUnavailable, TriplestoreError

logger = structlog.get_logger(__name__)

SPARQL_RESULTS_JSON = "application/sparql-results+json"
N_TRIPLES = "application/n-triples"

PING_QUERY = "SELECT * WHERE { ?s ?p ?o } LIMIT 1"


@dataclass
class QueryResult:
    """Normalized SELECT/ASK result."""

    rows: list[dict[str, str]] = field(default_factory=list)
    boolean: bool | None = None

    def first_int(self, key: str, default: int = 0) -> int:
        """Integer value of `key` in the first row (aggregate queries)."""
        if not self.rows or key not in self.rows[0]:
            return default
        try:
            return int(float(self.rows[0][key]))
        except ValueError:
            return default

    def values(self, key: str) -> list[str]:
        return [row[key] for row in self.rows if key in row]

    def to_dict(self) -> dict[str, Any]:
        return {"rows": self.rows, "boolean": self.boolean}


def parse_sparql_json(payload: dict[str, Any]) -> QueryResult:
    """
    Convert SPARQL 1.1 JSON results into a QueryResult.

    Raises:
        TriplestoreError: If the payload is neither a SELECT nor an ASK result
    """
    if "boolean" in payload:
        return QueryResult(boolean=bool(payload["boolean"]))

    try:
        bindings = payload["results"]["bindings"]
    except (KeyError, TypeError) as e:
        raise TriplestoreError(f"Malformed SPARQL JSON result: missing {e}") from e

    rows = [{name: term.get("value", "") for name, term in binding.items()} for binding in bindings]
    return QueryResult(rows=rows)


class TriplestoreAdapter(ABC):
    """
    Abstract SPARQL backend.

    Usage:
        async with create_adapter(settings.triplestore) as adapter:
            result = await adapter.query(sparql)
            count = result.first_int("count")
    """

    kind: str = "base"
    supports_transactions: bool = False

    @abstractmethod
    async def query(self, sparql: str, transaction_id: str | None = None) -> QueryResult:
        """Run a SELECT or ASK query."""

    @abstractmethod
    async def construct(self, sparql: str, transaction_id: str | None = None) -> str:
        """Run a CONSTRUCT query and return N-Triples text."""

    @abstractmethod
    async def update(self, sparql: str, transaction_id: str | None = None) -> None:
        """Run a SPARQL update."""

    @abstractmethod
    async def bulk_load(self, graph_uri: str, ntriples: str) -> None:
        """Add N-Triples to a named graph."""

    async def test_connection(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            await self.query(PING_QUERY)
            return True
        except Exception as e:
            logger.error("Connection test failed", kind=self.kind, error=str(e))
            return False

    async def begin_transaction(self) -> str:
        raise NotImplementedError(f"{self.kind} adapter does not support transactions")

    async def commit_transaction(self, transaction_id: str) -> None:
        raise NotImplementedError(f"{self.kind} adapter does not support transactions")

    async def rollback_transaction(self, transaction_id: str) -> None:
        raise NotImplementedError(f"{self.kind} adapter does not support transactions")

    async def close(self) -> None:
        """Release resources held by the adapter."""

    async def __aenter__(self) -> "TriplestoreAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class HttpTriplestoreAdapter(TriplestoreAdapter):
    """
    SPARQL 1.1 Protocol over httpx.

    Subclasses derive product-specific endpoints and implement bulk loading.
    """

    def __init__(
        self,
        query_endpoint: str,
        update_endpoint: str | None = None,
        graph_store_endpoint: str | None = None,
        auth_type: str = "none",
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
        timeout_seconds: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.query_endpoint = query_endpoint
        self.update_endpoint = update_endpoint or query_endpoint
        self.graph_store_endpoint = graph_store_endpoint
        self.auth_type = auth_type
        self._username = username
        self._password = password
        self._token = token
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Any, client: httpx.AsyncClient | None = None) -> "HttpTriplestoreAdapter":
        """Build an adapter from TriplestoreSettings."""
        return cls(
            query_endpoint=settings.query_endpoint,
            update_endpoint=settings.update_endpoint,
            graph_store_endpoint=settings.graph_store_endpoint,
            auth_type=settings.auth_type,
            username=settings.username,
            password=settings.password.get_secret_value() if settings.password else None,
            token=settings.token.get_secret_value() if settings.token else None,
            timeout_seconds=settings.timeout_seconds,
            client=client,
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def auth_headers(self) -> dict[str, str]:
        if self.auth_type == "basic":
            credentials = base64.b64encode(f"{self._username or ''}:{self._password or ''}".encode()).decode()
            return {"Authorization": f"Basic {credentials}"}
        if self.auth_type == "bearer":
            return {"Authorization": f"Bearer {self._token or ''}"}
        return {}

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        content: str | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Send one request and map failures onto the error taxonomy.

        Raises:
            BackendUnavailable: Connection or timeout failure
            TriplestoreError: Non-2xx response
        """
        all_headers = {**self.auth_headers(), **(headers or {})}
        try:
            response = await self._get_client().request(
                method, url, content=content, headers=all_headers, params=params
            )
        except httpx.TransportError as e:
            logger.error("Triplestore unreachable", kind=self.kind, url=url, operation=operation, error=str(e))
            raise BackendUnavailable(f"{self.kind} {operation} failed: {e}") from e

        if response.is_error:
            body = response.text[:500]
            logger.error(
                "Triplestore request failed",
                kind=self.kind,
                operation=operation,
                status=response.status_code,
                body=body,
            )
            raise TriplestoreError(
                f"{self.kind} {operation} failed ({response.status_code}): {body}",
                status_code=response.status_code,
            )
        return response

    def query_url(self, transaction_id: str | None = None) -> str:
        return self.query_endpoint

    def update_url(self, transaction_id: str | None = None) -> str:
        return self.update_endpoint

    async def query(self, sparql: str, transaction_id: str | None = None) -> QueryResult:
        logger.debug("Executing SPARQL query", kind=self.kind, transaction_id=transaction_id)
        response = await self._request(
            "POST",
            self.query_url(transaction_id),
            "query",
            content=sparql,
            headers={"Content-Type": "application/sparql-query", "Accept": SPARQL_RESULTS_JSON},
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise TriplestoreError(f"{self.kind} query returned invalid JSON: {e}") from e
        return parse_sparql_json(payload)

    async def construct(self, sparql: str, transaction_id: str | None = None) -> str:
        logger.debug("Executing SPARQL CONSTRUCT", kind=self.kind, transaction_id=transaction_id)
        response = await self._request(
            "POST",
            self.query_url(transaction_id),
            "construct",
            content=sparql,
            headers={"Content-Type": "application/sparql-query", "Accept": N_TRIPLES},
        )
        return response.text

    async def update(self, sparql: str, transaction_id: str | None = None) -> None:
        logger.debug("Executing SPARQL UPDATE", kind=self.kind, transaction_id=transaction_id)
        await self._request(
            "POST",
            self.update_url(transaction_id),
            "update",
            content=sparql,
            headers={"Content-Type": "application/sparql-update"},
        )
