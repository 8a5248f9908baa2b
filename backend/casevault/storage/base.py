"""
CaseVault Backend - Abstract Object Store Interface
=====================================================

What:  Abstract base class for the byte store behind document uploads.
Why:   The ingest pipeline and the bucket resolver receive an ObjectStore
       through their constructors, so tests swap in LocalObjectStore or a
       mock and production uses MinIO, with no change to calling code.
How:   Concrete implementations inherit from ObjectStore and implement the
       four operations below.
Who:   Called by DocumentIngestPipeline (put/delete), BucketResolver
       (get/ensure_bucket) and the health route.

Implementations:
    - MinioObjectStore: any S3-compatible endpoint (production)
    - LocalObjectStore: buckets as directories on disk (development, tests)
"""

from abc import ABC, abstractmethod


class ObjectStore(ABC):
    """
    Contract:
        - Buckets are flat names; keys may contain "/" separators.
        - put() overwrites an existing key silently. Callers guarantee unique
          keys (build_key embeds version and a millisecond timestamp).
        - Every backend failure surfaces as ObjectStoreError; a missing bucket
          or key on get() surfaces as ObjectNotFoundError.
    """

    #: Short backend name reported by the health endpoint
    backend_name: str = "abstract"

    @abstractmethod
    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        """
        Store `data` under `bucket`/`key`.

        Raises:
            ObjectStoreError: bucket missing, permission denied, or I/O failure.
        """
        ...

    @abstractmethod
    async def get(self, bucket: str, key: str) -> bytes:
        """
        Return the full content of `bucket`/`key`.

        Raises:
            ObjectNotFoundError: the bucket or the key does not exist.
            ObjectStoreError: any other backend failure.
        """
        ...

    @abstractmethod
    async def delete(self, bucket: str, key: str) -> None:
        """Remove `bucket`/`key`. Deleting a missing key is not an error."""
        ...

    @abstractmethod
    async def ensure_bucket(self, bucket: str) -> bool:
        """
        Create `bucket` if it does not exist.

        Returns:
            True if the bucket was created, False if it already existed.
        Raises:
            ObjectStoreError: the bucket could not be created.
        """
        ...
