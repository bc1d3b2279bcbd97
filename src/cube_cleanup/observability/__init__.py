"""
Observability Module.

Structured logging for cleanup and restore runs.
"""

from cube_cleanup.observability.logging import (
    LogContext,
    configure_logging,
)

__all__ = [
    "LogContext",
    "configure_logging",
]
