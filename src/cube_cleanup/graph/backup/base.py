"""
Backup Store Interface.

A backup is the N-Triples closure of one cube version, written before the
cube is deleted. Stores lay backups out as

    {domain}/{cube_name}/v{version}_{timestamp}.nt

so domain, cube name, version and creation time are recovered from the
key alone, without reading the payload.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlparse

import structlog

logger = structlog.get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"
BACKUP_SUFFIX = ".nt"

_VERSIONED_URI = re.compile(r"^(?P<family>.*)/(?P<version>[0-9]+)/?$")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")
_CUBE_TYPE_LINE = re.compile(
    r"^<([^>]+)>\s+<http://www\.w3\.org/1999/02/22-rdf-syntax-ns#type>\s+<https://cube\.link/Cube>\s*\.",
    re.MULTILINE,
)
_KEY = re.compile(
    r"(?:^|/)(?P<domain>[^/]+)/(?P<cube_name>[^/]+)/v(?P<version>[0-9]+)_(?P<timestamp>[^/_]+)\.nt$"
)


@dataclass(frozen=True)
class BackupRecord:
    """One stored backup."""

    location: str
    domain: str
    cube_name: str
    version: int
    created_at: datetime
    size_bytes: int = 0
    triple_count: int | None = None
    cube_uri: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "cube_uri": self.cube_uri,
            "domain": self.domain,
            "cube_name": self.cube_name,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "size_bytes": self.size_bytes,
            "triple_count": self.triple_count,
        }


def count_triples(ntriples: str) -> int:
    """Number of non-blank lines of an N-Triples payload."""
    return sum(1 for line in ntriples.splitlines() if line.strip())


def find_cube_uri(ntriples: str) -> str | None:
    """IRI of the subject typed cube:Cube in an N-Triples payload, if any."""
    match = _CUBE_TYPE_LINE.search(ntriples)
    return match.group(1) if match else None


def _safe(segment: str) -> str:
    return _UNSAFE.sub("_", segment) or "default"


def backup_key(cube_uri: str, created_at: datetime) -> str:
    """
    Storage key for a backup of `cube_uri` taken at `created_at`.

    Unversioned cubes are stored as version 0 under their last segment.
    """
    match = _VERSIONED_URI.match(cube_uri)
    if match:
        family, version = match.group("family"), int(match.group("version"))
    else:
        family, version = cube_uri.rstrip("/"), 0

    parsed = urlparse(cube_uri)
    domain = parsed.netloc or parsed.scheme or "default"
    cube_name = family.rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    timestamp = created_at.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    return f"{_safe(domain)}/{_safe(cube_name)}/v{version}_{timestamp}{BACKUP_SUFFIX}"


def parse_backup_key(key: str) -> dict[str, Any] | None:
    """Recover domain, cube name, version and creation time from a key. None if it does not match."""
    match = _KEY.search(key)
    if match is None:
        return None
    try:
        created_at = datetime.strptime(match.group("timestamp"), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    return {
        "domain": match.group("domain"),
        "cube_name": match.group("cube_name"),
        "version": int(match.group("version")),
        "created_at": created_at,
    }


class BackupStore(ABC):
    """
    Durable storage for cube backups.

    Usage:
        store = create_backup_store(settings.backup)
        await store.initialize()
        record = await store.save(cube_uri, ntriples)
        payload = await store.load(record.location)
    """

    kind: str = "base"

    def __init__(self, retention_days: int = 90) -> None:
        self.retention_days = retention_days

    @abstractmethod
    async def initialize(self) -> None:
        """Make sure the store is reachable and writable."""

    @abstractmethod
    async def save(self, cube_uri: str, ntriples: str) -> BackupRecord:
        """Persist a payload and return its record."""

    @abstractmethod
    async def load(self, location: str) -> str:
        """
        Read a payload back.

        Raises:
            BackupNotFound: If nothing is stored at `location`
        """

    @abstractmethod
    async def list(self, name_filter: str | None = None) -> list[BackupRecord]:
        """All backups, newest first, optionally only cube names containing `name_filter`."""

    @abstractmethod
    async def delete(self, location: str) -> None:
        """
        Remove one backup.

        Raises:
            BackupNotFound: If nothing is stored at `location`
        """

    async def cleanup_old_backups(self, now: datetime | None = None) -> int:
        """
        Delete backups created more than retention_days ago.

        Returns:
            Number of backups deleted
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.retention_days)
        deleted = 0

        for record in await self.list():
            if record.created_at < cutoff:
                await self.delete(record.location)
                logger.info(
                    "Deleted old backup",
                    location=record.location,
                    age_days=(now - record.created_at).days,
                )
                deleted += 1

        logger.info("Backup retention sweep completed", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted
