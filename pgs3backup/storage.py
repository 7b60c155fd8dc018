# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object Store Gateway - Capability wrapper over one bucket and key prefix.

Pipelines depend only on the ObjectStore protocol; S3ObjectStore implements
it on top of an aiobotocore S3 client. All keys passed in and returned are
backup names relative to the configured prefix.
"""

import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Protocol

import aiofiles
import structlog

from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import StorageError

logger = structlog.get_logger()

# S3 requires parts of at least 5 MiB except the last one
MULTIPART_CHUNK_SIZE = 8 * 1024 * 1024
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredObject:
    """Raw listing record for one object."""

    name: str
    last_modified: datetime
    size: int


class ObjectStore(Protocol):
    """Protocol for the operations the pipelines need from the store."""

    async def upload(self, path: Path, name: str, metadata: Mapping[str, str]) -> None:
        ...

    async def download(self, name: str, path: Path) -> None:
        ...

    async def delete(self, name: str) -> None:
        ...

    async def list(self, prefix: str) -> List[StoredObject]:
        ...

    async def head_metadata(self, name: str) -> Dict[str, str]:
        ...


class S3ObjectStore:
    """ObjectStore backed by an aiobotocore S3 client."""

    def __init__(
        self,
        s3_client: Any,
        bucket: str,
        prefix: str = "",
        multipart_chunk_size: int = MULTIPART_CHUNK_SIZE,
    ):
        self._client = s3_client
        self.bucket = bucket
        self.prefix = prefix
        self.multipart_chunk_size = multipart_chunk_size

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    async def upload(self, path: Path, name: str, metadata: Mapping[str, str]) -> None:
        """
        Upload a local file with user metadata.

        Files larger than one chunk go through multipart upload so memory use
        stays bounded; a failed multipart upload is aborted before raising.
        """
        key = self._key(name)
        size = os.path.getsize(path)

        try:
            if size <= self.multipart_chunk_size:
                async with aiofiles.open(path, "rb") as f:
                    body = await f.read()
                await self._client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    Metadata=dict(metadata),
                )
            else:
                await self._multipart_upload(path, key, metadata)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(
                f"Failed to upload {name}: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e

        logger.debug("object_uploaded", key=key, size=size)

    async def _multipart_upload(
        self, path: Path, key: str, metadata: Mapping[str, str]
    ) -> None:
        created = await self._client.create_multipart_upload(
            Bucket=self.bucket,
            Key=key,
            Metadata=dict(metadata),
        )
        upload_id = created["UploadId"]
        parts: List[dict] = []

        try:
            async with aiofiles.open(path, "rb") as f:
                part_number = 1
                while True:
                    chunk = await f.read(self.multipart_chunk_size)
                    if not chunk:
                        break
                    response = await self._client.upload_part(
                        Bucket=self.bucket,
                        Key=key,
                        UploadId=upload_id,
                        PartNumber=part_number,
                        Body=chunk,
                    )
                    parts.append({"ETag": response["ETag"], "PartNumber": part_number})
                    part_number += 1

            await self._client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException:
            try:
                await self._client.abort_multipart_upload(
                    Bucket=self.bucket, Key=key, UploadId=upload_id
                )
            except Exception as abort_error:
                logger.warning(
                    "multipart_abort_failed",
                    key=key,
                    upload_id=upload_id,
                    error=str(abort_error),
                )
            raise

    async def download(self, name: str, path: Path) -> None:
        """
        Stream an object to a local file.

        Data is written to a '.part' sibling and renamed on completion, so
        the target path only ever holds a complete download.
        """
        key = self._key(name)
        temp_path = path.with_name(path.name + ".part")

        try:
            response = await self._client.get_object(Bucket=self.bucket, Key=key)
            async with response["Body"] as stream:
                async with aiofiles.open(temp_path, "wb") as f:
                    while True:
                        chunk = await stream.read(DOWNLOAD_CHUNK_SIZE)
                        if not chunk:
                            break
                        await f.write(chunk)
            temp_path.replace(path)
        except Exception as e:
            temp_path.unlink(missing_ok=True)
            raise StorageError(
                f"Failed to download {name}: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        logger.debug("object_downloaded", key=key, path=str(path))

    async def delete(self, name: str) -> None:
        key = self._key(name)
        try:
            await self._client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(
                f"Failed to delete {name}: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e

        logger.debug("object_deleted", key=key)

    async def list(self, prefix: str) -> List[StoredObject]:
        """List every object whose name starts with prefix (all pages)."""
        objects: List[StoredObject] = []
        full_prefix = self._key(prefix)

        try:
            paginator = self._client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=full_prefix):
                for obj in page.get("Contents", []):
                    objects.append(
                        StoredObject(
                            name=obj["Key"][len(self.prefix):],
                            last_modified=obj["LastModified"],
                            size=obj.get("Size", 0),
                        )
                    )
        except Exception as e:
            raise StorageError(
                f"Failed to list backups: {e}",
                details={"prefix": full_prefix, "bucket": self.bucket},
            ) from e

        return objects

    async def head_metadata(self, name: str) -> Dict[str, str]:
        key = self._key(name)
        try:
            response = await self._client.head_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(
                f"Failed to read metadata for {name}: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e

        # S3 returns user metadata keys lowercased
        return {k.lower(): v for k, v in response.get("Metadata", {}).items()}


@asynccontextmanager
async def open_store(config: BackupConfig) -> AsyncIterator[S3ObjectStore]:
    """
    Open an S3 client for the configured endpoint and yield a store.

    Path-style addressing is used so MinIO and other S3-compatible
    endpoints work without DNS bucket aliases.
    """
    from aiobotocore.config import AioConfig
    from aiobotocore.session import get_session

    session = get_session()

    async with session.create_client(
        "s3",
        region_name=config.s3_region,
        endpoint_url=config.s3_endpoint,
        aws_access_key_id=config.s3_access_key,
        aws_secret_access_key=config.s3_secret_key,
        config=AioConfig(s3={"addressing_style": "path"}),
    ) as s3_client:
        yield S3ObjectStore(s3_client, config.s3_bucket, config.s3_prefix)
