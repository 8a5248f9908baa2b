"""
CaseVault Backend - Document Service
======================================

What:  Read and soft-delete operations on stored documents: list a record's
       documents, fetch a document's bytes through the bucket fallback
       chain, soft-delete a document.
Who:   routes/documents.py. Uploads go through DocumentIngestPipeline.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, union_all
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.exceptions import NotFoundError, StoreError
from casevault.models.classification import CaseType
from casevault.models.document import DocumentMetadata
from casevault.models.record import Backlog, Case
from casevault.services.bucket_resolver import BucketResolver
from casevault.services.record_service import RecordService, record_service

logger = logging.getLogger(__name__)


@dataclass
class DocumentContent:
    document: DocumentMetadata
    bucket: str
    data: bytes


class DocumentService:
    def __init__(self, records: Optional[RecordService] = None):
        self._records = records or record_service

    async def list_for_parent(self, db: AsyncSession, parent_id: str) -> List[DocumentMetadata]:
        """
        Active documents of a live record, by category then version.

        Raises:
            ParentNotFoundError: no live case or backlog record has this id.
        """
        await self._records.find_parent(db, parent_id)
        try:
            result = await db.execute(
                select(DocumentMetadata)
                .where(
                    DocumentMetadata.parent_id == parent_id,
                    DocumentMetadata.is_active.is_(True),
                    DocumentMetadata.deleted.is_(False),
                )
                .order_by(DocumentMetadata.category_id, DocumentMetadata.version)
            )
        except SQLAlchemyError as e:
            logger.error("Document listing failed for %s: %s", parent_id, str(e), exc_info=True)
            raise StoreError(context={"parent_id": parent_id}) from e
        return list(result.scalars())

    async def get_document(self, db: AsyncSession, document_id: int) -> DocumentMetadata:
        try:
            document = await db.scalar(
                select(DocumentMetadata).where(
                    DocumentMetadata.document_id == document_id,
                    DocumentMetadata.deleted.is_(False),
                )
            )
        except SQLAlchemyError as e:
            logger.error("Document lookup failed for %d: %s", document_id, str(e), exc_info=True)
            raise StoreError(context={"document_id": document_id}) from e
        if document is None:
            raise NotFoundError(resource="document", resource_id=str(document_id))
        return document

    async def fetch_content(
        self,
        db: AsyncSession,
        document_id: int,
        resolver: BucketResolver,
    ) -> DocumentContent:
        """
        Read a document's bytes, trying the recorded bucket first and then
        the case type and fallback buckets.

        Raises:
            NotFoundError: unknown document, or no bucket holds the object
                (the error lists every bucket tried).
        """
        document = await self.get_document(db, document_id)
        case_type_name = await self._case_type_name(db, document.parent_id)

        candidates = resolver.candidate_buckets(case_type_name, recorded_bucket=document.bucket)
        key = resolver.normalize_key(document.storage_key, candidates)
        bucket, data = await resolver.resolve_with_fallback(candidates, key)

        if bucket != document.bucket:
            logger.info(
                "Document %d served from %s (recorded bucket %s)",
                document_id, bucket, document.bucket,
            )
        return DocumentContent(document=document, bucket=bucket, data=data)

    async def soft_delete(self, db: AsyncSession, document_id: int) -> DocumentMetadata:
        """
        Mark a document deleted. The object stays in storage and the row
        stays in the table; the version stops counting toward NextVersion.
        """
        document = await self.get_document(db, document_id)
        document.deleted = True
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Soft delete failed for document %d: %s", document_id, str(e), exc_info=True)
            raise StoreError(context={"document_id": document_id}) from e
        logger.info(
            "Document %d (%s v%d) soft-deleted",
            document_id, document.parent_id, document.version,
        )
        return document

    async def _case_type_name(self, db: AsyncSession, parent_id: str) -> Optional[str]:
        """Case type name of a parent record, deleted or not."""
        parents = union_all(
            select(Case.case_type_id).where(Case.case_id == parent_id),
            select(Backlog.case_type_id).where(Backlog.backlog_id == parent_id),
        ).subquery()
        try:
            return await db.scalar(
                select(CaseType.case_type_name)
                .join(parents, CaseType.case_type_id == parents.c.case_type_id)
                .limit(1)
            )
        except SQLAlchemyError as e:
            logger.error("Case type lookup failed for %s: %s", parent_id, str(e), exc_info=True)
            raise StoreError(context={"parent_id": parent_id}) from e


# ── Singleton Instance ────────────────────────────────────────────────────
document_service = DocumentService()
