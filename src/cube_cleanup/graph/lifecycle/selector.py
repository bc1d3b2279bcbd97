"""
Deletion Selector.

Decides which cube versions survive a cleanup. Rank 1 is the newest
version of a family; a version is kept while its rank is at most
versions_to_keep. Rank counts distinct newer version numbers, so two
cubes that share a version number share a rank.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

_VERSIONED = re.compile(r"^(?P<family>.*)/(?P<version>[0-9]+)/?$")


class Action(str, Enum):
    KEEP = "KEEP"
    DELETE = "DELETE"


@dataclass(frozen=True)
class CubeVersion:
    """One ranked cube version."""

    cube_uri: str
    family: str
    version: int
    rank: int

    def action(self, versions_to_keep: int) -> Action:
        return Action.KEEP if self.rank <= versions_to_keep else Action.DELETE

    def to_dict(self) -> dict[str, Any]:
        return {
            "cube_uri": self.cube_uri,
            "family": self.family,
            "version": self.version,
            "rank": self.rank,
        }


@dataclass
class DeletionPlan:
    """Cubes of one graph split into survivors and deletion candidates."""

    keep: list[CubeVersion] = field(default_factory=list)
    delete: list[CubeVersion] = field(default_factory=list)
    unversioned: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.delete

    def to_dict(self) -> dict[str, Any]:
        return {
            "keep": [v.to_dict() for v in self.keep],
            "delete": [v.to_dict() for v in self.delete],
            "unversioned": self.unversioned,
        }


def parse_cube_version(uri: str) -> tuple[str, int] | None:
    """
    Split a cube IRI into (family, version).

    Returns None when the last path segment is not a non-negative integer.
    A single trailing slash is tolerated.

        >>> parse_cube_version("https://example.org/cube/7/")
        ('https://example.org/cube', 7)
    """
    match = _VERSIONED.match(uri)
    if match is None:
        return None
    return match.group("family"), int(match.group("version"))


def _validate_keep(versions_to_keep: int) -> int:
    if isinstance(versions_to_keep, bool) or not isinstance(versions_to_keep, int) or versions_to_keep < 1:
        raise ValueError(f"versions_to_keep must be a positive integer, got {versions_to_keep!r}")
    return versions_to_keep


def rank_versions(uris: Iterable[str]) -> tuple[list[CubeVersion], list[str]]:
    """
    Rank every versioned IRI within its family.

    Returns:
        (ranked versions ordered by family then rank, unversioned IRIs)
    """
    families: dict[str, list[tuple[str, int]]] = defaultdict(list)
    unversioned: list[str] = []

    for uri in dict.fromkeys(uris):
        parsed = parse_cube_version(uri)
        if parsed is None:
            unversioned.append(uri)
            continue
        family, version = parsed
        families[family].append((uri, version))

    ranked: list[CubeVersion] = []
    for family in sorted(families):
        members = families[family]
        distinct = sorted({v for _, v in members}, reverse=True)
        rank_of = {version: i + 1 for i, version in enumerate(distinct)}
        for uri, version in sorted(members, key=lambda m: (-m[1], m[0])):
            ranked.append(CubeVersion(cube_uri=uri, family=family, version=version, rank=rank_of[version]))

    return ranked, unversioned


def partition(rows: Iterable[Any], versions_to_keep: int = 2) -> DeletionPlan:
    """
    Build a DeletionPlan.

    Args:
        rows: Cube IRIs, or result rows carrying a "cube" key (rank columns
            from the store are ignored and recomputed locally)
        versions_to_keep: Newest versions kept per family

    Returns:
        DeletionPlan; families with at most versions_to_keep distinct
        versions contribute nothing to `delete`
    """
    keep = _validate_keep(versions_to_keep)
    uris = [row["cube"] if isinstance(row, dict) else row for row in rows]
    ranked, unversioned = rank_versions(uris)

    plan = DeletionPlan(unversioned=unversioned)
    for version in ranked:
        if version.action(keep) is Action.KEEP:
            plan.keep.append(version)
        else:
            plan.delete.append(version)
    return plan
