"""Backup store selection."""

from enum import Enum
from typing import Any

from cube_cleanup.graph.backup.base import BackupStore
from cube_cleanup.graph.backup.local_store import LocalBackupStore
from cube_cleanup.graph.backup.s3_store import S3BackupStore


class BackupStorageKind(str, Enum):
    """Supported backup backends."""

    LOCAL = "local"
    S3 = "s3"


def _local(settings: Any) -> BackupStore:
    return LocalBackupStore(root=settings.path, retention_days=settings.retention_days)


def _s3(settings: Any) -> BackupStore:
    secret = settings.s3_secret_access_key
    return S3BackupStore(
        bucket=settings.s3_bucket,
        prefix=settings.s3_prefix,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=secret.get_secret_value() if secret else None,
        retention_days=settings.retention_days,
    )


_BUILDERS = {
    BackupStorageKind.LOCAL: _local,
    BackupStorageKind.S3: _s3,
}


def create_backup_store(settings: Any) -> BackupStore:
    """
    Create the backup store named by BackupSettings.kind.

    Raises:
        ValueError: If the kind is not a BackupStorageKind
    """
    try:
        kind = BackupStorageKind(str(settings.kind).lower())
    except ValueError:
        supported = ", ".join(k.value for k in BackupStorageKind)
        raise ValueError(f"Unknown backup storage kind: {settings.kind}. Supported: {supported}") from None
    return _BUILDERS[kind](settings)
