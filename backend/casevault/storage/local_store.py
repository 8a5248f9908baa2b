"""
CaseVault Backend - Local Filesystem Object Store
===================================================

What:  ObjectStore implementation that keeps each bucket as a directory
       under a root path and each key as a file below it.
Why:   Development without a MinIO container, and a real (not mocked)
       store for the test suite.
How:   Async file I/O via aiofiles. Keys are resolved under the bucket
       directory and rejected if they escape it.

Directory Structure:
    storage/
    └── expc-fire-claim/             ← bucket
        └── ECSI-25-001/             ← parent id (first key segment)
            └── Invoice_scan_v1_20250314_101502123.pdf
"""

import logging
import os
from pathlib import Path

import aiofiles

from casevault.exceptions import ObjectNotFoundError, ObjectStoreError
from casevault.storage.base import ObjectStore

logger = logging.getLogger(__name__)


class LocalObjectStore(ObjectStore):
    backend_name = "local"

    def __init__(self, root: str, create_missing_buckets: bool = False):
        """
        Args:
            root: Directory holding one sub-directory per bucket.
            create_missing_buckets: When False (the default) put() into a
                bucket directory that does not exist fails, like a real
                S3 endpoint does.
        """
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.create_missing_buckets = create_missing_buckets
        logger.info("LocalObjectStore initialized with root=%s", self.root)

    def _bucket_path(self, bucket: str) -> Path:
        if not bucket or "/" in bucket or "\\" in bucket or bucket in {".", ".."}:
            raise ObjectStoreError(message=f"Invalid bucket name '{bucket}'", bucket=bucket)
        return self.root / bucket

    def _object_path(self, bucket: str, key: str) -> Path:
        bucket_path = self._bucket_path(bucket)
        path = (bucket_path / key).resolve()
        if bucket_path.resolve() not in path.parents:
            raise ObjectStoreError(
                message="Object key escapes its bucket",
                bucket=bucket,
                key=key,
            )
        return path

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        bucket_path = self._bucket_path(bucket)
        if not bucket_path.is_dir():
            if not self.create_missing_buckets:
                raise ObjectStoreError(
                    message=f"Bucket '{bucket}' does not exist",
                    bucket=bucket,
                    key=key,
                )
            bucket_path.mkdir(parents=True, exist_ok=True)

        path = self._object_path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store %s/%s: %s", bucket, key, e)
            raise ObjectStoreError(
                message=f"Failed to store object in bucket '{bucket}'",
                bucket=bucket,
                key=key,
                context={"os_error": str(e)},
            ) from e
        logger.debug("Stored %s/%s (%d bytes, %s)", bucket, key, len(data), content_type)

    async def get(self, bucket: str, key: str) -> bytes:
        path = self._object_path(bucket, key)
        if not path.is_file():
            raise ObjectNotFoundError(bucket=bucket, key=key)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise ObjectStoreError(
                message=f"Failed to read object from bucket '{bucket}'",
                bucket=bucket,
                key=key,
                context={"os_error": str(e)},
            ) from e

    async def delete(self, bucket: str, key: str) -> None:
        path = self._object_path(bucket, key)
        try:
            if path.exists():
                os.remove(path)
                logger.info("Deleted object %s/%s", bucket, key)
        except OSError as e:
            raise ObjectStoreError(
                message=f"Failed to delete object from bucket '{bucket}'",
                bucket=bucket,
                key=key,
                context={"os_error": str(e)},
            ) from e

    async def ensure_bucket(self, bucket: str) -> bool:
        bucket_path = self._bucket_path(bucket)
        if bucket_path.is_dir():
            return False
        try:
            bucket_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ObjectStoreError(
                message=f"Failed to create bucket '{bucket}'",
                bucket=bucket,
                context={"os_error": str(e)},
            ) from e
        logger.info("Created bucket: %s", bucket)
        return True
