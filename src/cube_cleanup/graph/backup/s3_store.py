"""
S3-compatible backup store (AWS S3, MinIO).

Keys: {prefix}{domain}/{cube_name}/v{version}_{timestamp}.nt
Object metadata carries the cube IRI and triple count and is read back on
listing. boto3 is blocking, so every call runs in a worker thread.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cube_cleanup.core.exceptions import BackupNotFound, BackupStoreError
from cube_cleanup.graph.backup.base import (
    BACKUP_SUFFIX,
    BackupRecord,
    BackupStore,
    backup_key,
    count_triples,
    parse_backup_key,
)

logger = structlog.get_logger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3BackupStore(BackupStore):
    """
    Backups as S3 objects.

    Usage:
        store = S3BackupStore(bucket="lindas-backups", endpoint_url="http://minio:9000",
                              access_key_id="minio", secret_access_key="minio123")
        await store.initialize()
    """

    kind = "s3"

    def __init__(
        self,
        bucket: str,
        prefix: str = "cube-backups/",
        region: str = "eu-central-1",
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        retention_days: int = 90,
        client: Any = None,
    ) -> None:
        super().__init__(retention_days=retention_days)
        if not bucket:
            raise BackupStoreError("S3 backup storage requires a bucket name")
        self.bucket = bucket
        self.prefix = prefix if not prefix or prefix.endswith("/") else f"{prefix}/"
        self.region = region
        self.endpoint_url = endpoint_url
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = client

    @property
    def client(self) -> Any:
        """Lazily created boto3 S3 client."""
        if self._client is None:
            kwargs: dict[str, Any] = {"region_name": self.region}
            if self.endpoint_url:
                # MinIO and most S3-compatible servers need path-style addressing
                kwargs["endpoint_url"] = self.endpoint_url
                kwargs["config"] = Config(s3={"addressing_style": "path"})
            if self._access_key_id and self._secret_access_key:
                kwargs["aws_access_key_id"] = self._access_key_id
                kwargs["aws_secret_access_key"] = self._secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def _key(self, location: str) -> str:
        return location if location.startswith(self.prefix) else f"{self.prefix}{location}"

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.client.list_objects_v2, Bucket=self.bucket, MaxKeys=1)
        except (ClientError, BotoCoreError) as e:
            raise BackupStoreError(f"Cannot access S3 bucket {self.bucket}: {e}") from e
        logger.info("S3 bucket accessible", bucket=self.bucket)

    async def save(self, cube_uri: str, ntriples: str) -> BackupRecord:
        created_at = datetime.now(timezone.utc)
        key = f"{self.prefix}{backup_key(cube_uri, created_at)}"
        body = ntriples.encode("utf-8")
        triple_count = count_triples(ntriples)

        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType="application/n-triples",
                Metadata={"cube-uri": cube_uri, "triple-count": str(triple_count)},
            )
        except (ClientError, BotoCoreError) as e:
            raise BackupStoreError(f"Failed to upload backup {key}: {e}") from e

        logger.info("Backup uploaded to S3", cube=cube_uri, bucket=self.bucket, key=key, size=len(body))
        return BackupRecord(
            location=key,
            cube_uri=cube_uri,
            size_bytes=len(body),
            triple_count=triple_count,
            **parse_backup_key(key),
        )

    async def load(self, location: str) -> str:
        key = self._key(location)
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
            body = await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise BackupNotFound(f"Backup not found: s3://{self.bucket}/{key}") from e
            raise BackupStoreError(f"Failed to download backup {key}: {e}") from e
        return body.decode("utf-8")

    async def delete(self, location: str) -> None:
        key = self._key(location)
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise BackupNotFound(f"Backup not found: s3://{self.bucket}/{key}") from e
            raise BackupStoreError(f"Failed to delete backup {key}: {e}") from e
        logger.info("Deleted backup from S3", bucket=self.bucket, key=key)

    def _scan(self, name_filter: str | None) -> list[BackupRecord]:
        records = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                if not key.endswith(BACKUP_SUFFIX):
                    continue
                parts = parse_backup_key(key)
                if parts is None:
                    continue
                if name_filter and name_filter not in parts["cube_name"]:
                    continue
                metadata = self.client.head_object(Bucket=self.bucket, Key=key).get("Metadata", {})
                triple_count = metadata.get("triple-count")
                records.append(BackupRecord(
                    location=key,
                    cube_uri=metadata.get("cube-uri"),
                    size_bytes=obj.get("Size", 0),
                    triple_count=int(triple_count) if triple_count and triple_count.isdigit() else None,
                    **parts,
                ))

        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def list(self, name_filter: str | None = None) -> list[BackupRecord]:
        try:
            return await asyncio.to_thread(self._scan, name_filter)
        except (ClientError, BotoCoreError) as e:
            raise BackupStoreError(f"Failed to list backups in {self.bucket}: {e}") from e
