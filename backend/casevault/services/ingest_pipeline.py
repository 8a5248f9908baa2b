"""
CaseVault Backend - Document Ingest Pipeline
==============================================

What:  Files one uploaded document under a case or backlog record: resolve
       the record's case type, resolve the category, compute the version,
       build the key, upload the bytes, persist the metadata row.
Who:   POST /api/records/{parent_id}/documents.

State machine:
    RECEIVED ─▶ CLASSIFICATION_RESOLVED ─▶ CATEGORY_RESOLVED ─▶ VERSION_COMPUTED
        ─▶ UPLOADED ─▶ METADATA_PERSISTED
    Any non-terminal state can move to FAILED. The raised error records the
    last state reached and the reconciliation context (parent id, case type,
    category, version, bucket, storage key).

Failure semantics:
    ┌──────────────────────────┬────────────────────────────┬─────────────────────┐
    │ Step                     │ Error                      │ Leaves behind       │
    ├──────────────────────────┼────────────────────────────┼─────────────────────┤
    │ validation               │ ValidationError            │ nothing             │
    │ parent lookup            │ ParentNotFoundError        │ nothing             │
    │ case type                │ MissingClassificationError │ nothing             │
    │ category                 │ CategoryResolutionError    │ nothing             │
    │ version query            │ VersionQueryError          │ nothing             │
    │ upload                   │ UploadError                │ nothing             │
    │ metadata insert          │ MetadataPersistError       │ orphaned object *   │
    └──────────────────────────┴────────────────────────────┴─────────────────────┘
    * unless cleanup_orphans_on_failure is enabled.

Version races:
    The metadata insert uses ON CONFLICT DO NOTHING against the partial unique
    index on (parent_id, category_id, version). No returned row means another
    upload took this version: the object just written is deleted (no row
    references it) and the version/upload/insert steps run again, up to
    version_conflict_max_attempts times (tenacity).
"""

import enum
import logging
import mimetypes
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from casevault.config import Settings, settings
from casevault.database import dialect_insert
from casevault.exceptions import (
    CaseVaultError,
    CategoryResolutionError,
    IngestFailure,
    MetadataPersistError,
    MissingClassificationError,
    ObjectStoreError,
    UploadError,
    ValidationError,
)
from casevault.models.category import DocumentCategory
from casevault.models.document import ACTIVE_VERSION_WHERE, DocumentMetadata
from casevault.services.bucket_resolver import BucketResolver
from casevault.services.category_resolver import CategoryResolver, category_resolver
from casevault.services.code_allocator import Clock, utc_now
from casevault.services.record_service import RecordService, record_service
from casevault.services.storage_keys import build_key, split_filename, stored_filename
from casevault.services.version_counter import VersionCounter, version_counter
from casevault.storage.base import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class IngestState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    CLASSIFICATION_RESOLVED = "CLASSIFICATION_RESOLVED"
    CATEGORY_RESOLVED = "CATEGORY_RESOLVED"
    VERSION_COMPUTED = "VERSION_COMPUTED"
    UPLOADED = "UPLOADED"
    METADATA_PERSISTED = "METADATA_PERSISTED"
    FAILED = "FAILED"


@dataclass
class IngestRequest:
    parent_id: str
    filename: str
    content: bytes
    content_type: Optional[str] = None
    category_id: Union[int, str, None] = None
    category_name: Optional[str] = None
    uploaded_by: Optional[int] = None
    is_customer_visible: bool = False


@dataclass
class IngestOutcome:
    document: DocumentMetadata
    attempts: int
    transitions: List[IngestState]

    @property
    def state(self) -> IngestState:
        return self.transitions[-1]


class VersionConflict(Exception):
    """Another upload persisted the same (parent, category, version) first."""

    def __init__(self, version: int):
        super().__init__(f"version {version} already taken")
        self.version = version


@dataclass
class _Progress:
    """Mutable per-ingest state: the state machine plus reconciliation context."""

    parent_id: str
    transitions: List[IngestState] = field(default_factory=lambda: [IngestState.RECEIVED])
    classification_id: Optional[int] = None
    category_id: Optional[int] = None
    version: Optional[int] = None
    bucket: Optional[str] = None
    storage_key: Optional[str] = None
    attempts: int = 0

    @property
    def state(self) -> IngestState:
        return self.transitions[-1]

    def advance(self, state: IngestState) -> None:
        self.transitions.append(state)

    def context(self) -> Dict[str, Any]:
        return {
            "parent_id": self.parent_id,
            "classification_id": self.classification_id,
            "category_id": self.category_id,
            "version": self.version,
            "bucket": self.bucket,
            "storage_key": self.storage_key,
            "attempts": self.attempts,
        }


class DocumentIngestPipeline:
    """
    Built per request in dependencies.py; per-ingest state lives in a
    _Progress, never on the instance. Collaborators are constructor-injected so
    tests can substitute any of them.
    """

    def __init__(
        self,
        store: ObjectStore,
        bucket_resolver: Optional[BucketResolver] = None,
        categories: Optional[CategoryResolver] = None,
        versions: Optional[VersionCounter] = None,
        records: Optional[RecordService] = None,
        clock: Optional[Clock] = None,
        config: Settings = settings,
    ):
        self.store = store
        self.bucket_resolver = bucket_resolver or BucketResolver.from_settings(store, config)
        self.categories = categories or category_resolver
        self.versions = versions or version_counter
        self.records = records or record_service
        self.clock = clock or utc_now
        self.config = config

    # ══════════════════════════════════════════════════════════════════════
    # Entry point
    # ══════════════════════════════════════════════════════════════════════

    async def ingest(self, db: AsyncSession, request: IngestRequest) -> IngestOutcome:
        """
        Run the pipeline to METADATA_PERSISTED or raise.

        The metadata row is flushed, not committed; the caller's session
        dependency commits.

        Raises:
            ValidationError, ParentNotFoundError, MissingClassificationError,
            CategoryResolutionError, VersionQueryError, UploadError,
            MetadataPersistError (see module docstring).
        """
        self._validate(request)
        progress = _Progress(parent_id=request.parent_id)

        try:
            # ── Classification ────────────────────────────────────────────
            parent = await self.records.find_parent(db, request.parent_id)
            classification = await self.records.get_classification(db, parent.case_type_id)
            if classification is None:
                raise MissingClassificationError(
                    context={"recorded_case_type_id": parent.case_type_id},
                )
            progress.classification_id = classification.case_type_id
            progress.advance(IngestState.CLASSIFICATION_RESOLVED)

            # ── Category ──────────────────────────────────────────────────
            progress.category_id = await self.categories.resolve(
                db,
                classification.case_type_id,
                candidate_name=request.category_name,
                category_id=request.category_id,
            )
            category_name = await self._category_name(db, progress.category_id)
            progress.advance(IngestState.CATEGORY_RESOLVED)

            # ── Version → upload → insert, retried on version conflicts ──
            progress.bucket = await self._write_bucket(classification.case_type_name)
            document = await self._persist_with_retry(db, request, progress, category_name)

        except CaseVaultError as e:
            raise self._fail(e, progress)

        progress.advance(IngestState.METADATA_PERSISTED)
        logger.info(
            "Document %d stored: %s v%d at %s/%s (%d bytes, %d attempt(s))",
            document.document_id,
            request.parent_id,
            document.version,
            document.bucket,
            document.storage_key,
            document.size,
            progress.attempts,
        )
        return IngestOutcome(
            document=document,
            attempts=progress.attempts,
            transitions=list(progress.transitions),
        )

    # ══════════════════════════════════════════════════════════════════════
    # Steps
    # ══════════════════════════════════════════════════════════════════════

    def _validate(self, request: IngestRequest) -> None:
        if not (request.filename or "").strip():
            raise ValidationError(message="A file name is required", field="file")
        if not request.content:
            raise ValidationError(
                message="The uploaded file is empty",
                field="file",
                context={"filename": request.filename},
            )
        if len(request.content) > self.config.max_file_size:
            max_mb = self.config.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB",
                field="file",
                context={"actual_size": len(request.content), "max_size": self.config.max_file_size},
            )

    async def _category_name(self, db: AsyncSession, category_id: int) -> str:
        try:
            name = await db.scalar(
                select(DocumentCategory.document_name).where(
                    DocumentCategory.category_id == category_id
                )
            )
        except SQLAlchemyError as e:
            raise CategoryResolutionError(context={"error_type": type(e).__name__}) from e
        return name or ""

    async def _write_bucket(self, case_type_name: str) -> str:
        try:
            return await self.bucket_resolver.resolve_write_bucket(case_type_name)
        except ObjectStoreError as e:
            raise UploadError(
                message="Document storage is not available for this case type",
                context=dict(e.context),
            ) from e

    async def _persist_with_retry(
        self,
        db: AsyncSession,
        request: IngestRequest,
        progress: _Progress,
        category_name: str,
    ) -> DocumentMetadata:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.version_conflict_max_attempts),
            retry=retry_if_exception_type(VersionConflict),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(db, request, progress, category_name)
        except VersionConflict as e:
            raise MetadataPersistError(
                message="Could not assign a document version after repeated conflicts. Please retry.",
                context={"last_conflicting_version": e.version},
            ) from e

    async def _attempt(
        self,
        db: AsyncSession,
        request: IngestRequest,
        progress: _Progress,
        category_name: str,
    ) -> DocumentMetadata:
        """One version → upload → insert pass. Raises VersionConflict to retry."""
        progress.attempts += 1
        progress.storage_key = None

        # ── Version ───────────────────────────────────────────────────────
        progress.version = await self.versions.next_version(db, request.parent_id, progress.category_id)
        progress.advance(IngestState.VERSION_COMPUTED)

        # ── Upload ────────────────────────────────────────────────────────
        key = build_key(
            request.parent_id,
            category_name,
            request.filename,
            progress.version,
            self.clock(),
        )
        mime_type = self._mime_type(request)
        try:
            await self.store.put(progress.bucket, key, request.content, mime_type)
        except ObjectStoreError as e:
            raise UploadError(context=dict(e.context)) from e
        progress.storage_key = key
        progress.advance(IngestState.UPLOADED)

        # ── Metadata ──────────────────────────────────────────────────────
        document_id = await self._insert_metadata(db, request, progress, key, mime_type)
        if document_id is None:
            logger.warning(
                "Version %d of %s/category %d was taken concurrently (attempt %d)",
                progress.version, request.parent_id, progress.category_id, progress.attempts,
            )
            await self._discard_object(progress.bucket, key)
            progress.storage_key = None
            raise VersionConflict(progress.version)

        try:
            return await db.get(DocumentMetadata, document_id)
        except SQLAlchemyError as e:
            await self._cleanup_orphan(progress)
            raise MetadataPersistError(context={"error_type": type(e).__name__}) from e

    async def _insert_metadata(
        self,
        db: AsyncSession,
        request: IngestRequest,
        progress: _Progress,
        key: str,
        mime_type: str,
    ) -> Optional[int]:
        table = DocumentMetadata.__table__
        extension = split_filename(request.filename).extension
        stmt = (
            dialect_insert(db, table)
            .values(
                parent_id=request.parent_id,
                category_id=progress.category_id,
                version=progress.version,
                original_filename=request.filename,
                stored_filename=stored_filename(key),
                bucket=progress.bucket,
                storage_key=key,
                file_type=extension.lower() if extension else None,
                size=len(request.content),
                mime_type=mime_type,
                uploaded_by=(
                    request.uploaded_by
                    if request.uploaded_by is not None
                    else self.config.system_user_id
                ),
                uploaded_at=self.clock(),
                is_customer_visible=request.is_customer_visible,
                is_active=True,
                deleted=False,
            )
            .on_conflict_do_nothing(
                index_elements=[table.c.parent_id, table.c.category_id, table.c.version],
                index_where=ACTIVE_VERSION_WHERE,
            )
            .returning(table.c.document_id)
        )
        try:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._cleanup_orphan(progress)
            raise MetadataPersistError(context={"error_type": type(e).__name__}) from e

    # ══════════════════════════════════════════════════════════════════════
    # Helpers
    # ══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _mime_type(request: IngestRequest) -> str:
        if request.content_type and request.content_type != DEFAULT_MIME_TYPE:
            return request.content_type
        guessed, _ = mimetypes.guess_type(request.filename)
        return guessed or DEFAULT_MIME_TYPE

    async def _discard_object(self, bucket: str, key: str) -> None:
        """Best-effort delete of an object no metadata row points at."""
        try:
            await self.store.delete(bucket, key)
        except ObjectStoreError as e:
            logger.warning("Could not delete unreferenced object %s/%s: %s", bucket, key, e.message)

    async def _cleanup_orphan(self, progress: _Progress) -> None:
        if self.config.cleanup_orphans_on_failure and progress.storage_key:
            await self._discard_object(progress.bucket, progress.storage_key)

    def _fail(self, error: CaseVaultError, progress: _Progress) -> CaseVaultError:
        """Stamp the failing state and reconciliation context onto `error`."""
        failed_in = progress.state
        progress.advance(IngestState.FAILED)

        for k, v in progress.context().items():
            if v is not None:
                error.context.setdefault(k, v)
        error.context["state"] = failed_in.value
        if isinstance(error, IngestFailure):
            error.state = failed_in.value

        if isinstance(error, MetadataPersistError) and progress.storage_key:
            if self.config.cleanup_orphans_on_failure:
                error.context["orphan_removed"] = True
            logger.error(
                "RECONCILE: object %s/%s has no metadata row (state=%s): %s",
                progress.bucket, progress.storage_key, failed_in.value, error.context,
            )
        else:
            logger.warning(
                "Ingest failed in state %s: %s %s",
                failed_in.value, type(error).__name__, error.context,
            )
        return error
