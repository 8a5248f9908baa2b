"""
CaseVault Backend - Document Ingest Pipeline Tests
====================================================

What:  Tests for DocumentIngestPipeline.ingest(), end to end and per failure.
How:   Seeded SQLite database + LocalObjectStore under tmp_path, fixed clock.
       Collaborator failures are injected with AsyncMock stand-ins.

What we test:
    ✅ Happy path: row, object bytes at the key, full state trail
    ✅ Versions increment per (record, category)
    ✅ Backlog records, MIME type detection, form-supplied attributes
    ✅ Validation errors before any work
    ✅ Parent / classification / category / version failures leave nothing behind
    ✅ Upload failures leave no metadata row
    ✅ Version conflicts retry with the next version and discard the loser's object
    ✅ Exhausted retries and metadata insert failures carry reconciliation context
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from urllib3.exceptions import MaxRetryError

from casevault.config import settings
from casevault.exceptions import (
    CategoryResolutionError,
    MetadataPersistError,
    MissingClassificationError,
    ObjectNotFoundError,
    ObjectStoreError,
    ParentNotFoundError,
    StoreError,
    UploadError,
    ValidationError,
    VersionQueryError,
)
from casevault.models import DocumentMetadata
from casevault.services.bucket_resolver import BucketResolver
from casevault.services.ingest_pipeline import (
    DocumentIngestPipeline,
    IngestRequest,
    IngestState,
)
from casevault.services.record_service import RecordService
from casevault.storage.minio_store import MinioObjectStore

from conftest import (
    BACKLOG_ID,
    CASE_ID,
    DELETED_CASE_ID,
    FIRE_BUCKET,
    FIXED_NOW,
    ORPHAN_CASE_ID,
    fixed_clock,
)

INVOICE_KEY_V1 = "ECSI-25-001/Invoice_scan_v1_20250314_101502123.pdf"


def _pipeline(store, config=settings, **collaborators):
    return DocumentIngestPipeline(
        store=store,
        bucket_resolver=BucketResolver(store, tenant_prefix="expc"),
        clock=fixed_clock,
        config=config,
        **collaborators,
    )


def _request(**overrides):
    values = dict(
        parent_id=CASE_ID,
        filename="scan.pdf",
        content=b"%PDF-1.7 invoice",
        category_name="Invoice",
    )
    values.update(overrides)
    return IngestRequest(**values)


async def _row_count(session):
    return await session.scalar(select(func.count()).select_from(DocumentMetadata))


class TestIngestSuccess:
    @pytest.mark.asyncio
    async def test_document_is_stored_and_recorded(self, seeded_db, object_store):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            outcome = await pipeline.ingest(session, _request())

        doc = outcome.document
        assert doc.parent_id == CASE_ID
        assert doc.category_id == 10
        assert doc.version == 1
        assert doc.bucket == FIRE_BUCKET
        assert doc.storage_key == INVOICE_KEY_V1
        assert doc.stored_filename == "Invoice_scan_v1_20250314_101502123.pdf"
        assert doc.original_filename == "scan.pdf"
        assert doc.file_type == "pdf"
        assert doc.size == len(b"%PDF-1.7 invoice")
        assert doc.mime_type == "application/pdf"
        assert doc.uploaded_by == settings.system_user_id
        assert doc.is_customer_visible is False
        assert await object_store.get(FIRE_BUCKET, INVOICE_KEY_V1) == b"%PDF-1.7 invoice"

        assert outcome.attempts == 1
        assert outcome.state == IngestState.METADATA_PERSISTED
        assert outcome.transitions == [
            IngestState.RECEIVED,
            IngestState.CLASSIFICATION_RESOLVED,
            IngestState.CATEGORY_RESOLVED,
            IngestState.VERSION_COMPUTED,
            IngestState.UPLOADED,
            IngestState.METADATA_PERSISTED,
        ]

    @pytest.mark.asyncio
    async def test_versions_increment_per_category(self, seeded_db, object_store):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            first = await pipeline.ingest(session, _request())
            second = await pipeline.ingest(session, _request(filename="scan-rev.pdf"))
            other = await pipeline.ingest(session, _request(category_name="Photos", filename="roof.jpg"))

        assert first.document.version == 1
        assert second.document.version == 2
        assert other.document.version == 1
        assert other.document.category_id != first.document.category_id

    @pytest.mark.asyncio
    async def test_soft_deleted_version_is_not_reused_by_count(self, seeded_db, object_store):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            await pipeline.ingest(session, _request())
            second = await pipeline.ingest(session, _request(filename="scan-rev.pdf"))
            second.document.deleted = True
            await session.flush()

            third = await pipeline.ingest(session, _request(filename="scan-final.pdf"))

        assert third.document.version == 2

    @pytest.mark.asyncio
    async def test_backlog_record_uses_its_case_type_bucket(self, seeded_db, object_store):
        await object_store.ensure_bucket("expc-motor-claim")
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            outcome = await pipeline.ingest(
                session,
                _request(parent_id=BACKLOG_ID, category_name="Police Report", filename="fir.pdf"),
            )

        assert outcome.document.bucket == "expc-motor-claim"
        assert outcome.document.category_id == 20
        assert outcome.document.storage_key.startswith(f"{BACKLOG_ID}/Police Report_fir_v1_")

    @pytest.mark.asyncio
    async def test_form_attributes_are_recorded(self, seeded_db, object_store):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            outcome = await pipeline.ingest(
                session,
                _request(
                    filename="roof.png",
                    content_type="application/octet-stream",
                    uploaded_by=42,
                    is_customer_visible=True,
                ),
            )

        assert outcome.document.mime_type == "image/png"
        assert outcome.document.uploaded_by == 42
        assert outcome.document.is_customer_visible is True

    @pytest.mark.asyncio
    async def test_uploader_id_zero_is_kept(self, seeded_db, object_store):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            explicit = await pipeline.ingest(session, _request(uploaded_by=0))
            default = await pipeline.ingest(session, _request())

        assert explicit.document.uploaded_by == 0
        assert default.document.uploaded_by == settings.system_user_id

    @pytest.mark.asyncio
    async def test_invalid_category_id_falls_back_to_default_category(self, seeded_db, object_store):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            outcome = await pipeline.ingest(
                session, _request(category_id="7", category_name=None),
            )

        assert outcome.document.category_id not in (10, 20)
        assert "/General Document_scan_v1_" in outcome.document.storage_key


class TestIngestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"content": b""},
            {"filename": ""},
            {"filename": "   "},
        ],
    )
    async def test_rejected_before_any_work(self, overrides, mock_db_session):
        store = MagicMock()
        store.put = AsyncMock()
        pipeline = _pipeline(store)

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.ingest(mock_db_session, _request(**overrides))

        assert exc_info.value.field == "file"
        store.put.assert_not_awaited()
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_file_rejected(self, mock_db_session):
        config = settings.model_copy(update={"max_file_size": 4})
        pipeline = _pipeline(MagicMock(), config=config)

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.ingest(mock_db_session, _request(content=b"12345"))

        assert exc_info.value.context["max_size"] == 4


class TestIngestEarlyFailures:
    """Failures before the upload: nothing is written anywhere."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("parent_id", ["ECSI-25-404", DELETED_CASE_ID])
    async def test_parent_not_found(self, seeded_db, object_store, parent_id):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            with pytest.raises(ParentNotFoundError) as exc_info:
                await pipeline.ingest(session, _request(parent_id=parent_id))
            assert await _row_count(session) == 0

        assert exc_info.value.state == IngestState.RECEIVED.value
        assert exc_info.value.context["parent_id"] == parent_id

    @pytest.mark.asyncio
    async def test_inactive_case_type_is_missing_classification(self, seeded_db, object_store):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            with pytest.raises(MissingClassificationError) as exc_info:
                await pipeline.ingest(session, _request(parent_id=ORPHAN_CASE_ID))

        assert exc_info.value.state == IngestState.RECEIVED.value
        assert exc_info.value.context["recorded_case_type_id"] == 3

    @pytest.mark.asyncio
    async def test_classification_lookup_failure_is_store_error(self, mock_db_session):
        case = MagicMock(case_type_id=1)
        mock_db_session.scalar = AsyncMock(side_effect=[
            case,
            OperationalError("SELECT case_types", {}, Exception("connection refused")),
        ])
        pipeline = _pipeline(MagicMock(), records=RecordService())

        with pytest.raises(StoreError) as exc_info:
            await pipeline.ingest(mock_db_session, _request())

        assert exc_info.value.context["state"] == IngestState.RECEIVED.value
        assert exc_info.value.context["parent_id"] == CASE_ID
        assert exc_info.value.context["case_type_id"] == 1

    @pytest.mark.asyncio
    async def test_category_failure(self, seeded_db, object_store):
        categories = MagicMock()
        categories.resolve = AsyncMock(side_effect=CategoryResolutionError())
        pipeline = _pipeline(object_store, categories=categories)

        async with seeded_db() as session:
            with pytest.raises(CategoryResolutionError) as exc_info:
                await pipeline.ingest(session, _request())

        assert exc_info.value.state == IngestState.CLASSIFICATION_RESOLVED.value
        assert exc_info.value.context["classification_id"] == 1

    @pytest.mark.asyncio
    async def test_version_query_failure_uploads_nothing(self, seeded_db):
        store = MagicMock()
        store.put = AsyncMock()
        versions = MagicMock()
        versions.next_version = AsyncMock(side_effect=VersionQueryError())
        pipeline = _pipeline(store, versions=versions)

        async with seeded_db() as session:
            with pytest.raises(VersionQueryError) as exc_info:
                await pipeline.ingest(session, _request())

        assert exc_info.value.state == IngestState.CATEGORY_RESOLVED.value
        assert exc_info.value.context["category_id"] == 10
        store.put.assert_not_awaited()


class TestIngestUploadFailures:
    @pytest.mark.asyncio
    async def test_missing_bucket_is_upload_error(self, seeded_db, object_store):
        # Motor Claim's bucket is not provisioned and the policy is STRICT
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            with pytest.raises(UploadError) as exc_info:
                await pipeline.ingest(
                    session, _request(parent_id=BACKLOG_ID, category_name="Police Report"),
                )
            assert await _row_count(session) == 0

        assert exc_info.value.state == IngestState.VERSION_COMPUTED.value
        assert exc_info.value.context["bucket"] == "expc-motor-claim"
        assert exc_info.value.context["version"] == 1

    @pytest.mark.asyncio
    async def test_store_failure_writes_no_row(self, seeded_db):
        store = MagicMock()
        store.put = AsyncMock(side_effect=ObjectStoreError(message="connection reset"))
        pipeline = _pipeline(store)

        async with seeded_db() as session:
            with pytest.raises(UploadError):
                await pipeline.ingest(session, _request())
            assert await _row_count(session) == 0


    @pytest.mark.asyncio
    async def test_unreachable_minio_is_upload_error(self, seeded_db):
        client = MagicMock()
        client.put_object.side_effect = MaxRetryError(
            None, "/expc-fire-claim", reason=ConnectionRefusedError("connection refused"),
        )
        pipeline = _pipeline(MinioObjectStore("minio:9000", "key", "secret", client=client))

        async with seeded_db() as session:
            with pytest.raises(UploadError) as exc_info:
                await pipeline.ingest(session, _request())
            assert await _row_count(session) == 0

        assert exc_info.value.state == IngestState.VERSION_COMPUTED.value
        assert exc_info.value.context["error_type"] == "MaxRetryError"
        assert exc_info.value.context["bucket"] == FIRE_BUCKET


class TestIngestVersionConflicts:
    @pytest.mark.asyncio
    async def test_conflict_retries_with_next_version(self, seeded_db, object_store):
        async with seeded_db() as session:
            await _pipeline(object_store).ingest(session, _request())

            # Stale read: the first attempt computes the version already taken
            versions = MagicMock()
            versions.next_version = AsyncMock(side_effect=[1, 2])
            outcome = await _pipeline(object_store, versions=versions).ingest(
                session, _request(filename="scan-rev.pdf"),
            )

        assert outcome.attempts == 2
        assert outcome.document.version == 2
        assert outcome.transitions.count(IngestState.VERSION_COMPUTED) == 2
        # Loser's object removed, earlier version untouched
        with pytest.raises(ObjectNotFoundError):
            await object_store.get(FIRE_BUCKET, "ECSI-25-001/Invoice_scan-rev_v1_20250314_101502123.pdf")
        assert await object_store.get(FIRE_BUCKET, INVOICE_KEY_V1) == b"%PDF-1.7 invoice"

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_metadata_persist_error(self, seeded_db, object_store):
        async with seeded_db() as session:
            await _pipeline(object_store).ingest(session, _request())

            versions = MagicMock()
            versions.next_version = AsyncMock(return_value=1)
            with pytest.raises(MetadataPersistError) as exc_info:
                await _pipeline(object_store, versions=versions).ingest(
                    session, _request(filename="scan-rev.pdf"),
                )

        error = exc_info.value
        assert versions.next_version.await_count == settings.version_conflict_max_attempts
        assert error.context["last_conflicting_version"] == 1
        assert error.context["attempts"] == settings.version_conflict_max_attempts
        assert "storage_key" not in error.context


class TestIngestMetadataFailure:
    """The object is uploaded but its row cannot be inserted."""

    async def _seed_key_collision(self, session):
        # A soft-deleted row already holds the key the next upload will build
        session.add(DocumentMetadata(
            parent_id=CASE_ID,
            category_id=10,
            version=1,
            original_filename="scan.pdf",
            stored_filename="Invoice_scan_v1_20250314_101502123.pdf",
            bucket=FIRE_BUCKET,
            storage_key=INVOICE_KEY_V1,
            size=1,
            mime_type="application/pdf",
            uploaded_at=FIXED_NOW,
            deleted=True,
        ))
        await session.flush()

    @pytest.mark.asyncio
    async def test_orphan_is_kept_and_reported(self, seeded_db, object_store, caplog):
        pipeline = _pipeline(object_store)

        async with seeded_db() as session:
            await self._seed_key_collision(session)
            with caplog.at_level(logging.ERROR, logger="casevault.services.ingest_pipeline"):
                with pytest.raises(MetadataPersistError) as exc_info:
                    await pipeline.ingest(session, _request())

        error = exc_info.value
        assert error.state == IngestState.UPLOADED.value
        assert error.context["storage_key"] == INVOICE_KEY_V1
        assert error.context["bucket"] == FIRE_BUCKET
        assert error.context["version"] == 1
        assert error.context["category_id"] == 10
        assert "orphan_removed" not in error.context
        assert await object_store.get(FIRE_BUCKET, INVOICE_KEY_V1) == b"%PDF-1.7 invoice"
        assert any("RECONCILE" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_orphan_cleanup_when_enabled(self, seeded_db, object_store):
        config = settings.model_copy(update={"cleanup_orphans_on_failure": True})
        pipeline = _pipeline(object_store, config=config)

        async with seeded_db() as session:
            await self._seed_key_collision(session)
            with pytest.raises(MetadataPersistError) as exc_info:
                await pipeline.ingest(session, _request())

        assert exc_info.value.context["orphan_removed"] is True
        with pytest.raises(ObjectNotFoundError):
            await object_store.get(FIRE_BUCKET, INVOICE_KEY_V1)
