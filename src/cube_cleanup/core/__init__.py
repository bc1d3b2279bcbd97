"""
Core Module.

Error taxonomy shared by the builder, adapters and orchestrators.
"""

from cube_cleanup.core.exceptions import (
    BackendUnavailable,
    BackupNotFound,
    BackupStoreError,
    ConflictError,
    CubeCleanupError,
    EmptyExport,
    ExtractionError,
    InvalidIdentifier,
    PostDeleteExistenceError,
    TriplestoreError,
    ValidationError,
)

__all__ = [
    "CubeCleanupError",
    "InvalidIdentifier",
    "BackendUnavailable",
    "TriplestoreError",
    "BackupStoreError",
    "BackupNotFound",
    "EmptyExport",
    "PostDeleteExistenceError",
    "ExtractionError",
    "ConflictError",
    "ValidationError",
]
