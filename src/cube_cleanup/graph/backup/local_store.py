"""
Local filesystem backup store.

Layout: {root}/{domain}/{cube_name}/v{version}_{timestamp}.nt
Record locations are keys relative to the root. Absolute paths are accepted
only when they point inside the root. Listing reads each payload back for
the cube IRI and triple count.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import structlog

from cube_cleanup.core.exceptions import BackupNotFound, BackupStoreError
from cube_cleanup.graph.backup.base import (
    BACKUP_SUFFIX,
    BackupRecord,
    BackupStore,
    backup_key,
    count_triples,
    find_cube_uri,
    parse_backup_key,
)

logger = structlog.get_logger(__name__)


class LocalBackupStore(BackupStore):
    """
    Backups as plain N-Triples files.

    Usage:
        store = LocalBackupStore("./backups", retention_days=90)
        await store.initialize()
        record = await store.save(cube_uri, ntriples)
    """

    kind = "local"

    def __init__(self, root: str | Path = "./backups", retention_days: int = 90) -> None:
        super().__init__(retention_days=retention_days)
        self.root = Path(root)

    def _resolve(self, location: str) -> Path:
        path = Path(location)
        resolved = path.resolve() if path.is_absolute() else (self.root / path).resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise BackupNotFound(f"Backup location escapes the backup root: {location}")
        return resolved

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise BackupStoreError(f"Cannot create backup directory {self.root}: {e}") from e
        logger.info("Backup directory ready", path=str(self.root))

    def _write(self, path: Path, ntriples: str) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(ntriples, encoding="utf-8")
        return path.stat().st_size

    async def save(self, cube_uri: str, ntriples: str) -> BackupRecord:
        created_at = datetime.now(timezone.utc)
        key = backup_key(cube_uri, created_at)
        path = self.root / key

        try:
            size = await asyncio.to_thread(self._write, path, ntriples)
        except OSError as e:
            raise BackupStoreError(f"Failed to write backup {path}: {e}") from e

        parts = parse_backup_key(key)
        record = BackupRecord(
            location=key,
            cube_uri=cube_uri,
            size_bytes=size,
            triple_count=count_triples(ntriples),
            **parts,
        )
        logger.info(
            "Backup saved",
            cube=cube_uri,
            path=str(path),
            size=size,
            triples=record.triple_count,
        )
        return record

    async def load(self, location: str) -> str:
        path = self._resolve(location)
        if not path.is_file():
            raise BackupNotFound(f"Backup file not found: {path}")
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    async def delete(self, location: str) -> None:
        path = self._resolve(location)
        if not path.is_file():
            raise BackupNotFound(f"Backup file not found: {path}")
        await asyncio.to_thread(path.unlink)
        logger.info("Deleted backup", path=str(path))

    def _scan(self, name_filter: str | None) -> list[BackupRecord]:
        records = []
        if not self.root.is_dir():
            return records

        for path in self.root.glob(f"*/*/*{BACKUP_SUFFIX}"):
            key = path.relative_to(self.root).as_posix()
            parts = parse_backup_key(key)
            if parts is None:
                continue
            if name_filter and name_filter not in parts["cube_name"]:
                continue
            ntriples = path.read_text(encoding="utf-8")
            records.append(BackupRecord(
                location=key,
                cube_uri=find_cube_uri(ntriples),
                size_bytes=path.stat().st_size,
                triple_count=count_triples(ntriples),
                **parts,
            ))

        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def list(self, name_filter: str | None = None) -> list[BackupRecord]:
        return await asyncio.to_thread(self._scan, name_filter)
