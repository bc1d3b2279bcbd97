"""
Runtime configuration for the cleanup service.

Supports environment variables, .env file loading and an optional JSON
config file layered on top.
"""

import json
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, Field, SecretStr
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _lowercase(v: Any) -> Any:
    """Product and backend names are matched case-insensitively."""
    if isinstance(v, str):
        return v.lower()
    return v


def split_comma_separated(v: Any) -> Any:
    """Accept "a,b,c" from the environment as a list."""
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class TriplestoreSettings(BaseSettings):
    """SPARQL triplestore connection settings."""

    model_config = SettingsConfigDict(env_prefix="TRIPLESTORE_")

    kind: Annotated[
        Literal["fuseki", "stardog", "graphdb", "memory"],
        BeforeValidator(_lowercase),
    ] = Field(default="fuseki", description="Triplestore product")

    query_endpoint: str = Field(
        default="http://localhost:3030/dataset/query", description="SPARQL query endpoint"
    )
    update_endpoint: str | None = Field(default=None, description="SPARQL update endpoint")
    graph_store_endpoint: str | None = Field(
        default=None, description="Graph Store Protocol endpoint (bulk load)"
    )

    auth_type: Annotated[
        Literal["none", "basic", "bearer"],
        BeforeValidator(_lowercase),
    ] = Field(default="none", description="Authentication scheme")
    username: str | None = Field(default=None, description="Basic auth username")
    password: SecretStr | None = Field(default=None, description="Basic auth password")
    token: SecretStr | None = Field(default=None, description="Bearer token")

    timeout_seconds: float = Field(default=300.0, description="HTTP timeout for SPARQL calls")


class BackupSettings(BaseSettings):
    """Backup storage settings."""

    model_config = SettingsConfigDict(env_prefix="BACKUP_")

    enabled: bool = Field(default=True, description="Create a backup before every delete")
    kind: Annotated[
        Literal["local", "s3"],
        BeforeValidator(_lowercase),
    ] = Field(default="local", description="Backup storage backend")

    # Local
    path: str = Field(default="./backups", description="Local backup root directory")

    # Retention
    retention_days: int = Field(default=90, ge=1, description="Days to keep backups")

    # S3 / MinIO
    s3_bucket: str | None = Field(default=None, description="S3 bucket name")
    s3_prefix: str = Field(default="cube-backups/", description="Key prefix inside the bucket")
    s3_region: str = Field(default="eu-central-1", description="S3 region")
    s3_endpoint: str | None = Field(default=None, description="Custom endpoint (MinIO)")
    s3_access_key_id: str | None = Field(default=None, description="S3 access key id")
    s3_secret_access_key: SecretStr | None = Field(default=None, description="S3 secret key")


class CleanupSettings(BaseSettings):
    """Version cleanup settings."""

    model_config = SettingsConfigDict(env_prefix="CLEANUP_")

    graphs: Annotated[list[str], NoDecode, BeforeValidator(split_comma_separated)] = Field(
        default_factory=list, description="Named graphs to clean"
    )
    versions_to_keep: int = Field(default=2, ge=1, description="Newest versions kept per cube")
    dry_run: bool = Field(default=False, description="Preview without deleting")
    max_delete_passes: int = Field(
        default=10, ge=1, description="Observation delete passes when overwriting on restore"
    )


class ObservabilitySettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format (json for production, console for development)"
    )
    log_file: str | None = Field(default=None, description="Optional JSON log file")


class Settings(BaseSettings):
    """Top-level settings; one nested section per component."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Cube Cleanup Service", description="Application name")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Root log level (LOG_LEVEL)"
    )

    triplestore: TriplestoreSettings = Field(default_factory=TriplestoreSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Settings read once from the environment and .env."""
    return Settings()


_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(data: Any) -> Any:
    """Replace ${NAME} references in string values with environment values."""
    if isinstance(data, str):
        return _ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), ""), data)
    if isinstance(data, dict):
        return {k: expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [expand_env_vars(v) for v in data]
    return data


def _deep_update(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_update(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from the environment, optionally overlaid with a JSON file.

    Values present in the file win over environment values. String values in
    the file may reference environment variables as ``${NAME}``.

    Args:
        config_path: Path to a JSON config file (None = environment only)

    Returns:
        Settings instance
    """
    settings = get_settings()
    if config_path is None:
        return settings

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path.resolve()}")

    with open(path, "r", encoding="utf-8") as f:
        file_data = expand_env_vars(json.load(f))

    merged = _deep_update(settings.model_dump(), file_data)
    return Settings.model_validate(merged)
