"""
CaseVault Backend - MinIO Object Store
========================================

What:  ObjectStore implementation over the MinIO S3-compatible client.
How:   The minio client is synchronous; every call runs in a worker thread
       via asyncio.to_thread so an upload never blocks the event loop.
       S3Error codes are translated into ObjectStoreError/ObjectNotFoundError;
       invalid bucket names (ValueError) and transport failures (urllib3
       HTTPError) become ObjectStoreError.
Who:   Built by storage.build_object_store() when OBJECT_STORE_BACKEND=minio.
"""

import asyncio
import logging
from io import BytesIO
from typing import Optional

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from casevault.exceptions import ObjectNotFoundError, ObjectStoreError
from casevault.storage.base import ObjectStore

logger = logging.getLogger(__name__)

# S3 error codes that mean "nothing there" rather than "something broke"
_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "NoSuchObject"}

# Client-side failures: bad bucket names and unreachable endpoints
_CLIENT_ERRORS = (S3Error, ValueError, HTTPError)


def _error_context(e: Exception) -> dict:
    if isinstance(e, S3Error):
        return {"s3_code": e.code}
    return {"error_type": type(e).__name__}


class MinioObjectStore(ObjectStore):
    backend_name = "minio"

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool = False,
        region: Optional[str] = None,
        client: Optional[Minio] = None,
    ):
        """
        Args:
            client: Pre-built Minio client (tests); built from the other
                    arguments when omitted.
        """
        self._client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )
        logger.info("MinioObjectStore initialized (endpoint=%s, secure=%s)", endpoint, secure)

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                bucket,
                key,
                BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except _CLIENT_ERRORS as e:
            logger.error("MinIO put failed for %s/%s: %s", bucket, key, e)
            raise ObjectStoreError(
                message=f"Failed to store object in bucket '{bucket}'",
                bucket=bucket,
                key=key,
                context=_error_context(e),
            ) from e
        logger.debug("Stored %s/%s (%d bytes)", bucket, key, len(data))

    def _read_object(self, bucket: str, key: str) -> bytes:
        response = self._client.get_object(bucket, key)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def get(self, bucket: str, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._read_object, bucket, key)
        except _CLIENT_ERRORS as e:
            if isinstance(e, S3Error) and e.code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(bucket=bucket, key=key, context={"s3_code": e.code}) from e
            logger.error("MinIO get failed for %s/%s: %s", bucket, key, e)
            raise ObjectStoreError(
                message=f"Failed to read object from bucket '{bucket}'",
                bucket=bucket,
                key=key,
                context=_error_context(e),
            ) from e

    async def delete(self, bucket: str, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.remove_object, bucket, key)
        except _CLIENT_ERRORS as e:
            if isinstance(e, S3Error) and e.code in _NOT_FOUND_CODES:
                return
            raise ObjectStoreError(
                message=f"Failed to delete object from bucket '{bucket}'",
                bucket=bucket,
                key=key,
                context=_error_context(e),
            ) from e

    def _ensure_bucket(self, bucket: str) -> bool:
        if self._client.bucket_exists(bucket):
            return False
        self._client.make_bucket(bucket)
        return True

    async def ensure_bucket(self, bucket: str) -> bool:
        try:
            created = await asyncio.to_thread(self._ensure_bucket, bucket)
        except _CLIENT_ERRORS as e:
            logger.error("Failed to create bucket %s: %s", bucket, e)
            raise ObjectStoreError(
                message=f"Failed to create bucket '{bucket}'",
                bucket=bucket,
                context=_error_context(e),
            ) from e
        if created:
            logger.info("Created bucket: %s", bucket)
        return created
