"""
Cube lifecycle management.

Version selection, phased deletion, cleanup runs, orphan removal and
restore from backup.
"""

from cube_cleanup.graph.lifecycle.cleanup import (
    CleanupConfig,
    CleanupOrchestrator,
    CleanupStats,
    CubePreview,
    CubeVersionInfo,
)
from cube_cleanup.graph.lifecycle.deleter import CubeDeleter, DeleteOutcome
from cube_cleanup.graph.lifecycle.orphans import (
    OrphanCategory,
    OrphanCleanupResult,
    OrphanDetails,
    OrphanManager,
)
from cube_cleanup.graph.lifecycle.restore import (
    BatchRestoreResult,
    RestoreItem,
    RestoreOrchestrator,
    RestoreResult,
    extract_cube_uri,
)
from cube_cleanup.graph.lifecycle.selector import (
    Action,
    CubeVersion,
    DeletionPlan,
    parse_cube_version,
    partition,
    rank_versions,
)

__all__ = [
    # Selection
    "Action",
    "CubeVersion",
    "DeletionPlan",
    "parse_cube_version",
    "partition",
    "rank_versions",
    # Deletion
    "CubeDeleter",
    "DeleteOutcome",
    # Cleanup
    "CleanupConfig",
    "CleanupOrchestrator",
    "CleanupStats",
    "CubePreview",
    "CubeVersionInfo",
    # Orphans
    "OrphanCategory",
    "OrphanCleanupResult",
    "OrphanDetails",
    "OrphanManager",
    # Restore
    "BatchRestoreResult",
    "RestoreItem",
    "RestoreOrchestrator",
    "RestoreResult",
    "extract_cube_uri",
]
