"""
CaseVault Backend - FastAPI Dependencies
==========================================

What:  Providers for the object store and the services built on it.
How:   The object store is created once (lifespan, or lazily on first use)
       and kept on `app.state`. Resolvers and the pipeline are cheap and
       built per request around it. Tests override `get_object_store`.
"""

from fastapi import Depends, Request

from casevault.config import settings
from casevault.services.bucket_resolver import BucketResolver
from casevault.services.ingest_pipeline import DocumentIngestPipeline
from casevault.storage import ObjectStore, build_object_store


def get_object_store(request: Request) -> ObjectStore:
    store = getattr(request.app.state, "object_store", None)
    if store is None:
        store = build_object_store(settings)
        request.app.state.object_store = store
    return store


def get_bucket_resolver(store: ObjectStore = Depends(get_object_store)) -> BucketResolver:
    return BucketResolver.from_settings(store, settings)


def get_ingest_pipeline(
    store: ObjectStore = Depends(get_object_store),
    resolver: BucketResolver = Depends(get_bucket_resolver),
) -> DocumentIngestPipeline:
    return DocumentIngestPipeline(store=store, bucket_resolver=resolver, config=settings)
