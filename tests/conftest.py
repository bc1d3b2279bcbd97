"""
Pytest Configuration and Shared Fixtures.

This module provides shared fixtures for testing the Cube Cleanup Service.
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cube_cleanup.config.settings import Settings, get_settings
from cube_cleanup.graph.backup.base import BackupStore
from cube_cleanup.graph.backup.local_store import LocalBackupStore
from cube_cleanup.graph.triplestore.base import QueryResult, TriplestoreAdapter
from cube_cleanup.graph.triplestore.memory import InMemoryTriplestore

GRAPH = "https://lindas.example.org/graph/environment"
FAMILY = "https://lindas.example.org/cube/air-quality"
STATIC_CUBE = "https://lindas.example.org/cube/stations"

RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
CUBE = "https://cube.link/"
SCHEMA = "http://schema.org/"
SH = "http://www.w3.org/ns/shacl#"

# Triples owned by one generated cube version (see cube_ntriples)
TRIPLES_PER_CUBE = 23


def cube_uri(version: int) -> str:
    return f"{FAMILY}/{version}"


def cube_ntriples(version: int, family: str = FAMILY) -> str:
    """
    N-Triples for one cube version: cube metadata, a node shape with one
    property shape carrying a two-element sh:in list, one observation set
    and two observations.
    """
    cube = f"{family}/{version}"
    shape = f"{cube}/shape"
    prop = f"{shape}/station"
    obs_set = f"{cube}/observation/"
    obs_a, obs_b = f"{obs_set}a", f"{obs_set}b"
    l1, l2 = f"_:list{version}a", f"_:list{version}b"
    station = "https://lindas.example.org/dimension/station"
    value = "https://lindas.example.org/measure/value"

    lines = [
        f"<{cube}> <{RDF}type> <{CUBE}Cube> .",
        f'<{cube}> <{SCHEMA}name> "Air quality v{version}" .',
        f'<{cube}> <{SCHEMA}dateCreated> "2024-0{version}-01" .',
        f"<{cube}> <{CUBE}observationConstraint> <{shape}> .",
        f"<{cube}> <{CUBE}observationSet> <{obs_set}> .",
        f"<{shape}> <{RDF}type> <{SH}NodeShape> .",
        f"<{shape}> <{SH}property> <{prop}> .",
        f"<{prop}> <{RDF}type> <{SH}PropertyShape> .",
        f"<{prop}> <{SH}path> <{station}> .",
        f"<{prop}> <{SH}in> {l1} .",
        f"{l1} <{RDF}first> <https://lindas.example.org/station/bern> .",
        f"{l1} <{RDF}rest> {l2} .",
        f"{l2} <{RDF}first> <https://lindas.example.org/station/basel> .",
        f"{l2} <{RDF}rest> <{RDF}nil> .",
        f"<{obs_set}> <{RDF}type> <{CUBE}ObservationSet> .",
        f"<{obs_set}> <{CUBE}observation> <{obs_a}> .",
        f"<{obs_set}> <{CUBE}observation> <{obs_b}> .",
        f"<{obs_a}> <{RDF}type> <{CUBE}Observation> .",
        f"<{obs_a}> <{station}> <https://lindas.example.org/station/bern> .",
        f'<{obs_a}> <{value}> "1.5" .',
        f"<{obs_b}> <{RDF}type> <{CUBE}Observation> .",
        f"<{obs_b}> <{station}> <https://lindas.example.org/station/basel> .",
        f'<{obs_b}> <{value}> "2.5" .',
    ]
    return "\n".join(lines) + "\n"


def static_cube_ntriples() -> str:
    return (
        f"<{STATIC_CUBE}> <{RDF}type> <{CUBE}Cube> .\n"
        f'<{STATIC_CUBE}> <{SCHEMA}name> "Stations" .\n'
    )


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Provide test settings with a local backup directory."""
    with patch.dict(
        "os.environ",
        {
            "TRIPLESTORE_KIND": "memory",
            "TRIPLESTORE_QUERY_ENDPOINT": str(tmp_path / "dataset.trig"),
            "BACKUP_KIND": "local",
            "BACKUP_PATH": str(tmp_path / "backups"),
            "CLEANUP_GRAPHS": GRAPH,
        },
    ):
        get_settings.cache_clear()
        settings = get_settings()
    get_settings.cache_clear()
    return settings


# =============================================================================
# Adapter Fixtures
# =============================================================================


@pytest.fixture
def mock_adapter() -> MagicMock:
    """Create a mock, non-transactional triplestore adapter."""
    adapter = MagicMock(spec=TriplestoreAdapter)
    adapter.kind = "mock"
    adapter.supports_transactions = False

    adapter.query = AsyncMock(return_value=QueryResult())
    adapter.construct = AsyncMock(return_value="")
    adapter.update = AsyncMock()
    adapter.bulk_load = AsyncMock()
    adapter.begin_transaction = AsyncMock(return_value="tx-1")
    adapter.commit_transaction = AsyncMock()
    adapter.rollback_transaction = AsyncMock()
    adapter.test_connection = AsyncMock(return_value=True)
    adapter.close = AsyncMock()

    return adapter


@pytest.fixture
def mock_backup_store() -> MagicMock:
    """Create a mock backup store."""
    store = MagicMock(spec=BackupStore)
    store.initialize = AsyncMock()
    store.save = AsyncMock()
    store.load = AsyncMock(return_value="")
    store.list = AsyncMock(return_value=[])
    store.delete = AsyncMock()
    store.cleanup_old_backups = AsyncMock(return_value=0)
    return store


@pytest.fixture
def make_cube() -> Callable[[int], str]:
    """N-Triples generator for one version of the sample cube family."""
    return cube_ntriples


@pytest.fixture
async def memory_store() -> AsyncGenerator[InMemoryTriplestore, None]:
    """In-memory triplestore holding versions 1 to 5 of a cube and one unversioned cube."""
    store = InMemoryTriplestore()
    payload = "".join(cube_ntriples(v) for v in range(1, 6)) + static_cube_ntriples()
    await store.bulk_load(GRAPH, payload)
    try:
        yield store
    finally:
        await store.close()


@pytest.fixture
async def local_backup_store(tmp_path: Path) -> LocalBackupStore:
    """Initialized local backup store in a temporary directory."""
    store = LocalBackupStore(tmp_path / "backups", retention_days=30)
    await store.initialize()
    return store
