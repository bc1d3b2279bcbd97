"""Triplestore adapter selection."""

from enum import Enum
from typing import Any

from cube_cleanup.graph.triplestore.base import TriplestoreAdapter
from cube_cleanup.graph.triplestore.fuseki import FusekiAdapter
from cube_cleanup.graph.triplestore.graphdb import GraphDBAdapter
from cube_cleanup.graph.triplestore.memory import InMemoryTriplestore
from cube_cleanup.graph.triplestore.stardog import StardogAdapter


class TriplestoreKind(str, Enum):
    """Supported SPARQL backends."""

    FUSEKI = "fuseki"
    STARDOG = "stardog"
    GRAPHDB = "graphdb"
    MEMORY = "memory"


_BUILDERS = {
    TriplestoreKind.FUSEKI: FusekiAdapter.from_settings,
    TriplestoreKind.STARDOG: StardogAdapter.from_settings,
    TriplestoreKind.GRAPHDB: GraphDBAdapter.from_settings,
    TriplestoreKind.MEMORY: InMemoryTriplestore.from_settings,
}


def create_adapter(settings: Any) -> TriplestoreAdapter:
    """
    Create the adapter named by TriplestoreSettings.kind.

    Raises:
        ValueError: If the kind is not a TriplestoreKind
    """
    try:
        kind = TriplestoreKind(str(settings.kind).lower())
    except ValueError:
        supported = ", ".join(k.value for k in TriplestoreKind)
        raise ValueError(f"Unknown triplestore kind: {settings.kind}. Supported: {supported}") from None
    return _BUILDERS[kind](settings)


def detect_kind(endpoint: str | None) -> TriplestoreKind | None:
    """Guess the backend from a query endpoint URL. None if nothing matches."""
    if not endpoint:
        return None

    url = endpoint.lower()
    if "fuseki" in url or ":3030" in url:
        return TriplestoreKind.FUSEKI
    if "stardog" in url or ":5820" in url:
        return TriplestoreKind.STARDOG
    if "graphdb" in url or "/repositories/" in url:
        return TriplestoreKind.GRAPHDB
    return None
