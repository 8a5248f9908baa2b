"""
CaseVault Backend - Object Storage Package
============================================

`build_object_store()` picks the backend from settings; the result is
created once in the app lifespan and stored on `app.state.object_store`.
"""

from casevault.config import Settings
from casevault.storage.base import ObjectStore
from casevault.storage.local_store import LocalObjectStore
from casevault.storage.minio_store import MinioObjectStore


def build_object_store(settings: Settings) -> ObjectStore:
    if settings.object_store_backend == "local":
        return LocalObjectStore(settings.local_storage_root)
    return MinioObjectStore(
        endpoint=settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
        region=settings.minio_region,
    )


__all__ = ["ObjectStore", "LocalObjectStore", "MinioObjectStore", "build_object_store"]
