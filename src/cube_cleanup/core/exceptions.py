"""
Error taxonomy for the cube cleanup service.

Per-cube and per-restore errors are caught by the orchestrators and
recorded; initialization errors (unreachable backend, unreachable backup
store) propagate and abort the run.
"""


class CubeCleanupError(Exception):
    """Base class for all service errors."""

    pass


class InvalidIdentifier(CubeCleanupError, ValueError):
    """Malformed or unsafe resource/graph identifier."""

    def __init__(self, value: object, reason: str) -> None:
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid identifier {value!r}: {reason}")


class BackendUnavailable(CubeCleanupError):
    """Connection or transport failure talking to the triplestore."""

    pass


class TriplestoreError(CubeCleanupError):
    """The triplestore rejected a request or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class BackupStoreError(CubeCleanupError):
    """Backup storage could not be initialized or written."""

    pass


class BackupNotFound(BackupStoreError):
    """Requested backup does not exist."""

    pass


class EmptyExport(CubeCleanupError):
    """Export of a cube closure produced zero triples."""

    def __init__(self, cube_uri: str) -> None:
        self.cube_uri = cube_uri
        super().__init__(f"Export produced no triples for {cube_uri}; delete skipped")


class PostDeleteExistenceError(CubeCleanupError):
    """Cube still exists after the phased delete."""

    def __init__(self, cube_uri: str) -> None:
        self.cube_uri = cube_uri
        super().__init__(f"Cube still exists after deletion: {cube_uri}")


class ExtractionError(CubeCleanupError):
    """No cube identifier could be recovered from a backup payload."""

    pass


class ConflictError(CubeCleanupError):
    """Restore target already holds the cube and overwrite was not requested."""

    def __init__(self, cube_uri: str) -> None:
        self.cube_uri = cube_uri
        super().__init__(f"Cube already exists: {cube_uri}. Use overwrite to replace.")


class ValidationError(CubeCleanupError):
    """Post-restore validation failed. The load is not rolled back."""

    pass
