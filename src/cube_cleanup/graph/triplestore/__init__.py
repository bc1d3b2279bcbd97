"""
Triplestore adapters.

One async adapter per backend product, all normalized to QueryResult.
"""

from cube_cleanup.graph.triplestore.base import (
    HttpTriplestoreAdapter,
    QueryResult,
    TriplestoreAdapter,
    parse_sparql_json,
)
from cube_cleanup.graph.triplestore.factory import TriplestoreKind, create_adapter, detect_kind
from cube_cleanup.graph.triplestore.fuseki import FusekiAdapter
from cube_cleanup.graph.triplestore.graphdb import GraphDBAdapter
from cube_cleanup.graph.triplestore.memory import InMemoryTriplestore
from cube_cleanup.graph.triplestore.stardog import StardogAdapter

__all__ = [
    "FusekiAdapter",
    "GraphDBAdapter",
    "HttpTriplestoreAdapter",
    "InMemoryTriplestore",
    "QueryResult",
    "StardogAdapter",
    "TriplestoreAdapter",
    "TriplestoreKind",
    "create_adapter",
    "detect_kind",
    "parse_sparql_json",
]
