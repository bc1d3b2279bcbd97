"""
Logging setup for cleanup and restore runs.

structlog on top of the stdlib logging backend:
- console renderer for interactive use, JSON lines for schedulers
- graph / cube / backup context bound per unit of work
- credentials removed from events, including user:password in endpoint URLs
- optional JSON log file next to the console output
"""

import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.contextvars import bind_contextvars, merge_contextvars, reset_contextvars
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "cube-cleanup"

REDACTED = "***REDACTED***"

SECRET_KEY_PARTS = ("password", "secret", "token", "authorization", "access_key", "credential")

_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s:]+:[^/@\s]+@", re.IGNORECASE)

QUIET_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "s3transfer", "rdflib", "asyncio")


class LogContext:
    """
    Bind graph/cube/backup fields to every event logged inside the block.

    Usage:
        with LogContext(graph=graph_uri, cube=cube_uri):
            logger.info("Deleting cube")
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = bind_contextvars(**self._fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        reset_contextvars(**self._tokens)
        return False


def stamp_event(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """UTC timestamp with millisecond precision plus the service name."""
    now = datetime.now(timezone.utc)
    event_dict["timestamp"] = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _redact(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _redact(k, v) for k, v in value.items()}
    if value is None:
        return value
    if any(part in key.lower() for part in SECRET_KEY_PARTS):
        return REDACTED
    if isinstance(value, str) and "@" in value:
        return _URL_CREDENTIALS.sub(lambda m: f"{m.group('scheme')}{REDACTED}@", value)
    return value


def redact_credentials(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask secret-looking fields and credentials embedded in URLs."""
    for key, value in event_dict.items():
        event_dict[key] = _redact(key, value)
    return event_dict


def _file_handler(log_file: str, processors: list[Processor]) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=processors,
        )
    )
    return handler


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "console",
    log_file: str | None = None,
) -> None:
    """
    Configure structlog and the root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        format: "json" for one JSON object per line, "console" for humans
        log_file: When set, events are also appended there as JSON lines
    """
    processors: list[Processor] = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        stamp_event,
        redact_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=processors)
    )

    root = logging.getLogger()
    root.handlers = [stderr_handler]
    if log_file:
        root.addHandler(_file_handler(log_file, processors))
    root.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
