"""
Unit Tests for the deletion selector.
"""

import pytest

from cube_cleanup.graph.lifecycle.selector import (
    Action,
    CubeVersion,
    parse_cube_version,
    partition,
    rank_versions,
)

BASE = "https://lindas.example.org/cube/air-quality"


def uris(*versions: int, base: str = BASE) -> list[str]:
    return [f"{base}/{v}" for v in versions]


class TestParseCubeVersion:
    def test_versioned(self) -> None:
        assert parse_cube_version(f"{BASE}/12") == (BASE, 12)

    def test_trailing_slash(self) -> None:
        assert parse_cube_version(f"{BASE}/7/") == (BASE, 7)

    @pytest.mark.parametrize(
        "uri",
        [BASE, f"{BASE}/v2", f"{BASE}/2/observation", f"{BASE}/2//", "https://example.org/cube#3"],
    )
    def test_unversioned(self, uri: str) -> None:
        assert parse_cube_version(uri) is None


class TestRankVersions:
    def test_newest_is_rank_one(self) -> None:
        ranked, unversioned = rank_versions(uris(1, 2, 3))

        assert [(v.version, v.rank) for v in ranked] == [(3, 1), (2, 2), (1, 3)]
        assert unversioned == []

    def test_duplicate_versions_share_rank(self) -> None:
        ranked, _ = rank_versions([f"{BASE}/3", f"{BASE}/3/", f"{BASE}/2"])

        ranks = {v.cube_uri: v.rank for v in ranked}
        assert ranks[f"{BASE}/3"] == 1
        assert ranks[f"{BASE}/3/"] == 1
        assert ranks[f"{BASE}/2"] == 2

    def test_families_are_ranked_independently(self) -> None:
        other = "https://lindas.example.org/cube/water"
        ranked, _ = rank_versions(uris(1, 2) + uris(5, 9, base=other))

        by_uri = {v.cube_uri: v for v in ranked}
        assert by_uri[f"{BASE}/2"].rank == 1
        assert by_uri[f"{other}/9"].rank == 1
        assert by_uri[f"{other}/5"].family == other

    def test_unversioned_are_set_aside(self) -> None:
        ranked, unversioned = rank_versions([BASE, f"{BASE}/1"])

        assert [v.cube_uri for v in ranked] == [f"{BASE}/1"]
        assert unversioned == [BASE]

    def test_duplicates_in_input_collapse(self) -> None:
        ranked, _ = rank_versions(uris(1, 1, 2))

        assert len(ranked) == 2


class TestPartition:
    """Test cases for partition."""

    def test_keeps_newest_two_by_default(self) -> None:
        plan = partition(uris(1, 2, 3, 4, 5))

        assert [v.version for v in plan.keep] == [5, 4]
        assert [v.version for v in plan.delete] == [3, 2, 1]
        assert not plan.is_empty

    def test_family_at_threshold_deletes_nothing(self) -> None:
        plan = partition(uris(1, 2), versions_to_keep=2)

        assert plan.is_empty
        assert len(plan.keep) == 2

    def test_keep_one(self) -> None:
        plan = partition(uris(1, 2, 3), versions_to_keep=1)

        assert [v.version for v in plan.keep] == [3]
        assert [v.version for v in plan.delete] == [2, 1]

    def test_accepts_result_rows(self) -> None:
        rows = [
            {"cube": f"{BASE}/1", "rank": "99", "action": "KEEP"},
            {"cube": f"{BASE}/2", "rank": "1", "action": "KEEP"},
            {"cube": f"{BASE}/3", "rank": "1", "action": "KEEP"},
        ]

        plan = partition(rows, versions_to_keep=2)

        # rank columns from the store are recomputed
        assert [v.cube_uri for v in plan.delete] == [f"{BASE}/1"]

    def test_duplicate_versions_never_push_a_cube_out(self) -> None:
        plan = partition([f"{BASE}/3", f"{BASE}/3/", f"{BASE}/2", f"{BASE}/1"], versions_to_keep=2)

        assert {v.cube_uri for v in plan.keep} == {f"{BASE}/3", f"{BASE}/3/", f"{BASE}/2"}
        assert [v.cube_uri for v in plan.delete] == [f"{BASE}/1"]

    def test_unversioned_always_kept(self) -> None:
        plan = partition([BASE], versions_to_keep=1)

        assert plan.unversioned == [BASE]
        assert plan.is_empty

    @pytest.mark.parametrize("keep", [0, -3, True, "2"])
    def test_rejects_bad_keep(self, keep) -> None:
        with pytest.raises(ValueError):
            partition(uris(1, 2), versions_to_keep=keep)

    def test_to_dict(self) -> None:
        plan = partition(uris(1, 2, 3), versions_to_keep=2)

        data = plan.to_dict()
        assert data["delete"] == [{"cube_uri": f"{BASE}/1", "family": BASE, "version": 1, "rank": 3}]
        assert data["unversioned"] == []


class TestCubeVersion:
    def test_action(self) -> None:
        version = CubeVersion(cube_uri=f"{BASE}/3", family=BASE, version=3, rank=2)

        assert version.action(2) is Action.KEEP
        assert version.action(1) is Action.DELETE
        assert Action.DELETE.value == "DELETE"
