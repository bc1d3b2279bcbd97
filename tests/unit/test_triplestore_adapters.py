"""
Unit Tests for triplestore adapters.

HTTP adapters are exercised against httpx.MockTransport; the recorded
requests show which endpoint, method and content type each operation uses.
"""

import base64
from pathlib import Path

import httpx
import pytest

from cube_cleanup.config.settings import TriplestoreSettings
from cube_cleanup.core.exceptions import BackendUnavailable, InvalidIdentifier, TriplestoreError
from cube_cleanup.graph.triplestore.base import QueryResult, parse_sparql_json
from cube_cleanup.graph.triplestore.factory import TriplestoreKind, create_adapter, detect_kind
from cube_cleanup.graph.triplestore.fuseki import FusekiAdapter
from cube_cleanup.graph.triplestore.graphdb import GraphDBAdapter
from cube_cleanup.graph.triplestore.memory import InMemoryTriplestore
from cube_cleanup.graph.triplestore.stardog import StardogAdapter

GRAPH = "https://lindas.example.org/graph/environment"

SELECT_JSON = {
    "head": {"vars": ["cube", "count"]},
    "results": {"bindings": [
        {
            "cube": {"type": "uri", "value": "https://example.org/cube/1"},
            "count": {"type": "literal", "value": "42"},
        },
    ]},
}


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._responses:
            return self._responses.pop(0)
        return httpx.Response(204)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class TestQueryResult:
    def test_parse_select(self) -> None:
        result = parse_sparql_json(SELECT_JSON)

        assert result.rows == [{"cube": "https://example.org/cube/1", "count": "42"}]
        assert result.first_int("count") == 42
        assert result.values("cube") == ["https://example.org/cube/1"]

    def test_parse_ask(self) -> None:
        assert parse_sparql_json({"head": {}, "boolean": True}).boolean is True

    def test_parse_malformed(self) -> None:
        with pytest.raises(TriplestoreError):
            parse_sparql_json({"head": {}})

    def test_first_int_defaults(self) -> None:
        assert QueryResult().first_int("count") == 0
        assert QueryResult(rows=[{"count": "n/a"}]).first_int("count", default=-1) == -1


class TestFusekiAdapter:
    """Test cases for FusekiAdapter."""

    def test_derives_endpoints(self) -> None:
        adapter = FusekiAdapter("http://localhost:3030/lindas/query")

        assert adapter.update_endpoint == "http://localhost:3030/lindas/update"
        assert adapter.graph_store_endpoint == "http://localhost:3030/lindas/data"

    @pytest.mark.asyncio
    async def test_query_posts_sparql(self) -> None:
        recorder = Recorder(httpx.Response(200, json=SELECT_JSON))
        adapter = FusekiAdapter("http://localhost:3030/lindas/query", client=recorder.client())

        result = await adapter.query("SELECT * WHERE { ?s ?p ?o }")

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://localhost:3030/lindas/query"
        assert request.headers["Content-Type"] == "application/sparql-query"
        assert request.headers["Accept"] == "application/sparql-results+json"
        assert result.first_int("count") == 42

    @pytest.mark.asyncio
    async def test_update_goes_to_update_endpoint(self) -> None:
        recorder = Recorder(httpx.Response(204))
        adapter = FusekiAdapter("http://localhost:3030/lindas/sparql", client=recorder.client())

        await adapter.update("CLEAR GRAPH <https://example.org/g>")

        request = recorder.requests[0]
        assert str(request.url) == "http://localhost:3030/lindas/update"
        assert request.headers["Content-Type"] == "application/sparql-update"

    @pytest.mark.asyncio
    async def test_bulk_load_uses_graph_store_protocol(self) -> None:
        recorder = Recorder(httpx.Response(201))
        adapter = FusekiAdapter("http://localhost:3030/lindas/query", client=recorder.client())

        await adapter.bulk_load(GRAPH, "<a> <b> <c> .\n")

        request = recorder.requests[0]
        assert request.url.path == "/lindas/data"
        assert request.url.params["graph"] == GRAPH
        assert request.headers["Content-Type"] == "application/n-triples"

    @pytest.mark.asyncio
    async def test_bulk_load_validates_graph(self) -> None:
        recorder = Recorder()
        adapter = FusekiAdapter("http://localhost:3030/lindas/query", client=recorder.client())

        with pytest.raises(InvalidIdentifier):
            await adapter.bulk_load("https://example.org/g> <x", "")

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_http_error_maps_to_triplestore_error(self) -> None:
        recorder = Recorder(httpx.Response(400, text="Parse error"))
        adapter = FusekiAdapter("http://localhost:3030/lindas/query", client=recorder.client())

        with pytest.raises(TriplestoreError) as exc_info:
            await adapter.query("SELECT")

        assert exc_info.value.status_code == 400
        assert "Parse error" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_backend_unavailable(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        adapter = FusekiAdapter("http://localhost:3030/lindas/query", client=client)

        with pytest.raises(BackendUnavailable):
            await adapter.query("SELECT * WHERE { ?s ?p ?o }")
        assert not await adapter.test_connection()

    @pytest.mark.asyncio
    async def test_basic_auth_header(self) -> None:
        recorder = Recorder(httpx.Response(200, json=SELECT_JSON))
        adapter = FusekiAdapter(
            "http://localhost:3030/lindas/query",
            auth_type="basic",
            username="admin",
            password="secret",
            client=recorder.client(),
        )

        await adapter.query("SELECT * WHERE { ?s ?p ?o }")

        expected = base64.b64encode(b"admin:secret").decode()
        assert recorder.requests[0].headers["Authorization"] == f"Basic {expected}"

    def test_transactions_not_supported(self) -> None:
        assert FusekiAdapter.supports_transactions is False


class TestStardogAdapter:
    """Test cases for StardogAdapter."""

    def test_rejects_endpoint_without_database(self) -> None:
        with pytest.raises(ValueError):
            StardogAdapter("http://localhost:5820")

    @pytest.mark.asyncio
    async def test_transactional_update(self) -> None:
        recorder = Recorder(httpx.Response(200, text="tx-42\n"), httpx.Response(200), httpx.Response(200))
        adapter = StardogAdapter("http://localhost:5820/cubes/query", client=recorder.client())

        tx = await adapter.begin_transaction()
        await adapter.update("DELETE WHERE { ?s ?p ?o }", transaction_id=tx)
        await adapter.commit_transaction(tx)

        assert tx == "tx-42"
        assert [r.url.path for r in recorder.requests] == [
            "/cubes/transaction/begin",
            "/cubes/tx-42/update",
            "/cubes/transaction/commit/tx-42",
        ]

    @pytest.mark.asyncio
    async def test_bulk_load_rolls_back_on_failure(self) -> None:
        recorder = Recorder(
            httpx.Response(200, text="tx-7"),
            httpx.Response(500, text="bad data"),
            httpx.Response(200),
        )
        adapter = StardogAdapter("http://localhost:5820/cubes/query", client=recorder.client())

        with pytest.raises(TriplestoreError):
            await adapter.bulk_load(GRAPH, "<a> <b> <c> .\n")

        paths = [r.url.path for r in recorder.requests]
        assert paths == ["/cubes/transaction/begin", "/cubes/tx-7/add", "/cubes/transaction/rollback/tx-7"]
        assert recorder.requests[1].url.params["graph-uri"] == GRAPH

    @pytest.mark.asyncio
    async def test_failed_rollback_keeps_load_error(self) -> None:
        recorder = Recorder(
            httpx.Response(200, text="tx-8"),
            httpx.Response(400, text="bad data"),
            httpx.Response(404, text="unknown transaction"),
        )
        adapter = StardogAdapter("http://localhost:5820/cubes/query", client=recorder.client())

        with pytest.raises(TriplestoreError) as exc_info:
            await adapter.bulk_load(GRAPH, "<a> <b> <c> .\n")

        assert exc_info.value.status_code == 400
        assert "bad data" in str(exc_info.value)
        assert recorder.requests[-1].url.path == "/cubes/transaction/rollback/tx-8"

    @pytest.mark.asyncio
    async def test_bearer_auth(self) -> None:
        recorder = Recorder(httpx.Response(200, json={"head": {}, "boolean": False}))
        adapter = StardogAdapter(
            "http://localhost:5820/cubes/query", auth_type="bearer", token="abc", client=recorder.client()
        )

        result = await adapter.query("ASK { ?s ?p ?o }")

        assert result.boolean is False
        assert recorder.requests[0].headers["Authorization"] == "Bearer abc"


class TestGraphDBAdapter:
    @pytest.mark.asyncio
    async def test_bulk_load_uses_context(self) -> None:
        recorder = Recorder(httpx.Response(204))
        adapter = GraphDBAdapter("http://localhost:7200/repositories/lindas", client=recorder.client())

        await adapter.bulk_load(GRAPH, "<a> <b> <c> .\n")

        request = recorder.requests[0]
        assert request.url.path == "/repositories/lindas/statements"
        assert request.url.params["context"] == f"<{GRAPH}>"
        assert adapter.repository == "lindas"


class TestInMemoryTriplestore:
    """Test cases for the rdflib-backed adapter."""

    @pytest.mark.asyncio
    async def test_query_and_ask(self) -> None:
        store = InMemoryTriplestore()
        await store.bulk_load(GRAPH, "<https://example.org/a> <https://example.org/b> <https://example.org/c> .\n")

        rows = await store.query(f"SELECT (COUNT(*) AS ?count) WHERE {{ GRAPH <{GRAPH}> {{ ?s ?p ?o }} }}")
        ask = await store.query(f"ASK {{ GRAPH <{GRAPH}> {{ ?s ?p ?o }} }}")

        assert rows.first_int("count") == 1
        assert ask.boolean is True

    @pytest.mark.asyncio
    async def test_rollback_restores_snapshot(self) -> None:
        store = InMemoryTriplestore()
        await store.bulk_load(GRAPH, "<https://example.org/a> <https://example.org/b> <https://example.org/c> .\n")

        tx = await store.begin_transaction()
        await store.update(f"CLEAR GRAPH <{GRAPH}>", transaction_id=tx)
        assert store.triple_count(GRAPH) == 0
        await store.rollback_transaction(tx)

        assert store.triple_count(GRAPH) == 1

    @pytest.mark.asyncio
    async def test_bad_query_raises(self) -> None:
        with pytest.raises(TriplestoreError):
            await InMemoryTriplestore().query("SELECT nonsense")

    @pytest.mark.asyncio
    async def test_file_backed_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "dataset.trig"
        store = InMemoryTriplestore(path=path)
        await store.bulk_load(GRAPH, "<https://example.org/a> <https://example.org/b> <https://example.org/c> .\n")
        await store.close()

        reopened = InMemoryTriplestore(path=path)

        assert reopened.triple_count(GRAPH) == 1


class TestFactory:
    def test_create_by_kind(self) -> None:
        settings = TriplestoreSettings(kind="Stardog", query_endpoint="http://localhost:5820/cubes/query")

        adapter = create_adapter(settings)

        assert isinstance(adapter, StardogAdapter)
        assert adapter.database == "cubes"

    def test_memory_kind_uses_endpoint_as_file(self, tmp_path: Path) -> None:
        settings = TriplestoreSettings(kind="memory", query_endpoint=str(tmp_path / "data.trig"))

        adapter = create_adapter(settings)

        assert isinstance(adapter, InMemoryTriplestore)
        assert adapter.path == tmp_path / "data.trig"

    @pytest.mark.parametrize(
        "endpoint, kind",
        [
            ("http://fuseki:3030/ds/query", TriplestoreKind.FUSEKI),
            ("https://stardog.example.org/db/query", TriplestoreKind.STARDOG),
            ("http://localhost:7200/repositories/lindas", TriplestoreKind.GRAPHDB),
            ("https://sparql.example.org/query", None),
            (None, None),
        ],
    )
    def test_detect_kind(self, endpoint, kind) -> None:
        assert detect_kind(endpoint) == kind
