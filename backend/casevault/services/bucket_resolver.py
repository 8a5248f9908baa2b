"""
CaseVault Backend - Bucket Resolver
=====================================

What:  Maps a case type name to its bucket and walks the fallback chain
       when reading.
Who:   DocumentIngestPipeline (write path) and the document download route
       (read path).

Write path:
    resolve_bucket("Fire Claim") → "expc-fire-claim"
    STRICT policy (default): no existence check. A missing bucket surfaces
        from ObjectStore.put and the pipeline fails with UploadError.
    AUTO_CREATE policy: ensure_bucket() first; if that fails, write to the
        configured write fallback bucket instead.

Read path:
    Documents written by older deployments live in several places, so a
    download tries, in order:
        1. the bucket recorded on the metadata row
        2. expc-{slug}
        3. public-{slug}
        4. the configured fallback buckets (case-documents, expc-general)
    Duplicates are dropped; a bucket that errors is skipped like one that
    lacks the object. Exhausting the chain raises NotFoundError listing
    every bucket tried.

Stored paths:
    Older rows hold full public URLs ("https://host/storage/v1/object/public/
    expc-fire-claim/ECSI-25-001/x.pdf") or "bucket/key" strings rather than
    bare keys. normalize_key() reduces all of these to the key.
"""

import enum
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlsplit

from casevault.config import Settings, settings
from casevault.exceptions import (
    MissingClassificationError,
    NotFoundError,
    ObjectNotFoundError,
    ObjectStoreError,
)
from casevault.storage.base import ObjectStore

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# Path marker of public object URLs issued by S3-style gateways
_PUBLIC_URL_MARKER = "/object/public/"

PUBLIC_BUCKET_PREFIX = "public"


class BucketPolicy(str, enum.Enum):
    STRICT = "strict"
    AUTO_CREATE = "auto_create"


def slugify(name: str) -> str:
    """Lowercase, trim, collapse whitespace runs to "-"."""
    return _WHITESPACE.sub("-", (name or "").strip().lower())


class BucketResolver:
    def __init__(
        self,
        store: ObjectStore,
        tenant_prefix: str = "expc",
        fallback_buckets: Sequence[str] = (),
        policy: BucketPolicy = BucketPolicy.STRICT,
        write_fallback_bucket: Optional[str] = None,
    ):
        self.store = store
        self.tenant_prefix = tenant_prefix
        self.fallback_buckets = list(fallback_buckets)
        self.policy = BucketPolicy(policy)
        self.write_fallback_bucket = write_fallback_bucket

    @classmethod
    def from_settings(cls, store: ObjectStore, config: Settings = settings) -> "BucketResolver":
        return cls(
            store=store,
            tenant_prefix=config.bucket_tenant_prefix,
            fallback_buckets=config.fallback_buckets_list,
            policy=BucketPolicy(config.bucket_policy),
            write_fallback_bucket=config.write_fallback_bucket,
        )

    # ── Write path ────────────────────────────────────────────────────────

    def resolve_bucket(self, case_type_name: str) -> str:
        """
        Raises:
            MissingClassificationError: the name is blank.
        """
        slug = slugify(case_type_name)
        if not slug:
            raise MissingClassificationError(
                message="Cannot derive a bucket from an empty case type name",
                context={"case_type_name": case_type_name},
            )
        return f"{self.tenant_prefix}-{slug}"

    async def resolve_write_bucket(self, case_type_name: str) -> str:
        """Bucket to upload into, applying the configured policy."""
        bucket = self.resolve_bucket(case_type_name)
        if self.policy is BucketPolicy.STRICT:
            return bucket

        try:
            await self.store.ensure_bucket(bucket)
            return bucket
        except ObjectStoreError as e:
            if not self.write_fallback_bucket:
                raise
            logger.warning(
                "Could not provision bucket %s (%s); writing to fallback bucket %s",
                bucket, e.message, self.write_fallback_bucket,
            )
            return self.write_fallback_bucket

    # ── Read path ─────────────────────────────────────────────────────────

    def candidate_buckets(
        self,
        case_type_name: Optional[str],
        recorded_bucket: Optional[str] = None,
    ) -> List[str]:
        slug = slugify(case_type_name or "")
        ordered: List[Optional[str]] = [recorded_bucket]
        if slug:
            ordered.append(f"{self.tenant_prefix}-{slug}")
            ordered.append(f"{PUBLIC_BUCKET_PREFIX}-{slug}")
        ordered.extend(self.fallback_buckets)

        seen = set()
        candidates: List[str] = []
        for bucket in ordered:
            if bucket and bucket not in seen:
                seen.add(bucket)
                candidates.append(bucket)
        return candidates

    async def resolve_with_fallback(self, candidates: Iterable[str], key: str) -> Tuple[str, bytes]:
        """
        Return (bucket, content) from the first candidate holding `key`.

        Raises:
            NotFoundError: no candidate returned the key. `tried_buckets`
                lists every bucket tried, in order; `bucket_errors` maps the
                buckets that failed for reasons other than "not found".
        """
        tried: List[str] = []
        errors: Dict[str, str] = {}
        for bucket in candidates:
            tried.append(bucket)
            try:
                data = await self.store.get(bucket, key)
            except ObjectNotFoundError:
                logger.debug("Object %s not in bucket %s", key, bucket)
                continue
            except ObjectStoreError as e:
                logger.warning("Reading %s from bucket %s failed: %s", key, bucket, e.message)
                errors[bucket] = e.context.get("s3_code") or e.context.get("error_type") or e.message
                continue
            if len(tried) > 1:
                logger.info("Object %s found in fallback bucket %s", key, bucket)
            return bucket, data

        logger.warning("Object %s not found in any bucket; tried %s", key, tried)
        context = {"storage_key": key}
        if errors:
            context["bucket_errors"] = errors
        raise NotFoundError(
            resource="object",
            resource_id=key,
            tried_buckets=tried,
            context=context,
        )

    def normalize_key(self, stored_path: str, buckets: Iterable[str] = ()) -> str:
        """
        Reduce a stored path to a bare object key.

        Handles full public URLs, path-style URLs ("https://host/bucket/key"),
        and "bucket/key" strings for any of `buckets`. Bare keys pass through.
        """
        path = (stored_path or "").strip()
        known = [b for b in buckets if b]

        if path.startswith(("http://", "https://")):
            path = unquote(urlsplit(path).path)
            if _PUBLIC_URL_MARKER in path:
                after = path.split(_PUBLIC_URL_MARKER, 1)[1]
                # First segment after the marker is the bucket
                path = after.split("/", 1)[1] if "/" in after else after
                return path.lstrip("/")
            path = path.lstrip("/")

        for bucket in known:
            if path.startswith(bucket + "/"):
                return path[len(bucket) + 1:]
        return path.lstrip("/")
