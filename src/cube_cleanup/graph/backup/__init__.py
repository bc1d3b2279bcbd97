"""
Backup storage for cube closures.

Local filesystem and S3-compatible stores behind one BackupStore interface.
"""

from cube_cleanup.graph.backup.base import BackupRecord, BackupStore, count_triples
from cube_cleanup.graph.backup.factory import BackupStorageKind, create_backup_store
from cube_cleanup.graph.backup.local_store import LocalBackupStore
from cube_cleanup.graph.backup.s3_store import S3BackupStore

__all__ = [
    "BackupRecord",
    "BackupStorageKind",
    "BackupStore",
    "LocalBackupStore",
    "S3BackupStore",
    "count_triples",
    "create_backup_store",
]
