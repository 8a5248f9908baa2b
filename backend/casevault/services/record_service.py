"""
CaseVault Backend - Record Service
====================================

What:  Creates case and backlog records with allocated codes, and resolves a
       parent record (plus its case type) for document uploads.
How:   The code allocation and the record insert run on the same session, so
       they commit together in get_db_session(). A failed insert rolls the
       counter increment back with it: no record without a code, no code
       without a record.
Who:   routes/records.py (create) and DocumentIngestPipeline (find_parent).
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.config import settings
from casevault.exceptions import (
    CaseVaultError,
    MissingClassificationError,
    ParentNotFoundError,
    StoreError,
)
from casevault.models.classification import CaseType
from casevault.models.counter import CounterNamespace
from casevault.models.record import Backlog, Case
from casevault.schemas.records import RecordCreate, RecordResponse
from casevault.services.code_allocator import SequentialCodeAllocator, code_allocator

logger = logging.getLogger(__name__)

ParentRecord = Union[Case, Backlog]


@dataclass(frozen=True)
class ParentContext:
    """What the ingest pipeline needs to know about a document's parent."""

    parent_id: str
    record_type: str
    case_type_id: Optional[int]


class RecordService:
    def __init__(self, allocator: Optional[SequentialCodeAllocator] = None):
        self._allocator = allocator or code_allocator

    async def create_case(self, db: AsyncSession, payload: RecordCreate) -> RecordResponse:
        """
        Raises:
            MissingClassificationError: the case type does not resolve.
            StoreError: allocation or insert failed; nothing was created.
        """
        case_type = await self._resolve_case_type(db, payload)
        code = await self._allocator.allocate(db, CounterNamespace.CASE, settings.case_code_prefix)
        case = Case(
            case_id=code,
            case_type_id=case_type.case_type_id,
            summary=payload.summary,
            description=payload.description,
            created_by=payload.created_by,
        )
        await self._insert(db, case, code)
        return self._to_response(case, "case")

    async def create_backlog(self, db: AsyncSession, payload: RecordCreate) -> RecordResponse:
        case_type = await self._resolve_case_type(db, payload)
        code = await self._allocator.allocate(db, CounterNamespace.BACKLOG, settings.backlog_code_prefix)
        ticket = Backlog(
            backlog_id=code,
            case_type_id=case_type.case_type_id,
            summary=payload.summary,
            description=payload.description,
            created_by=payload.created_by,
        )
        await self._insert(db, ticket, code)
        return self._to_response(ticket, "backlog")

    async def find_parent(self, db: AsyncSession, parent_id: str) -> ParentContext:
        """
        Look up a case, then a backlog ticket, that is not soft-deleted.

        Raises:
            ParentNotFoundError: neither table holds a live record.
        """
        try:
            case = await db.scalar(
                select(Case).where(Case.case_id == parent_id, Case.deleted_flag.is_(False))
            )
            if case is not None:
                return ParentContext(parent_id, "case", case.case_type_id)

            ticket = await db.scalar(
                select(Backlog).where(Backlog.backlog_id == parent_id, Backlog.deleted_flag.is_(False))
            )
            if ticket is not None:
                return ParentContext(parent_id, "backlog", ticket.case_type_id)
        except SQLAlchemyError as e:
            logger.error("Parent lookup failed for %s: %s", parent_id, str(e), exc_info=True)
            raise StoreError(context={"parent_id": parent_id}) from e

        raise ParentNotFoundError(parent_id=parent_id)

    async def get_classification(self, db: AsyncSession, case_type_id: Optional[int]) -> Optional[CaseType]:
        """Active case type by id, or None."""
        if case_type_id is None:
            return None
        try:
            return await db.scalar(
                select(CaseType).where(
                    CaseType.case_type_id == case_type_id,
                    CaseType.is_active.is_(True),
                )
            )
        except SQLAlchemyError as e:
            logger.error("Case type lookup failed for %s: %s", case_type_id, str(e), exc_info=True)
            raise StoreError(context={"case_type_id": case_type_id}) from e

    # ── Internal helpers ──────────────────────────────────────────────────

    async def _resolve_case_type(self, db: AsyncSession, payload: RecordCreate) -> CaseType:
        if payload.case_type_id is not None:
            case_type = await self.get_classification(db, payload.case_type_id)
        else:
            name = (payload.case_type_name or "").strip()
            try:
                case_type = await db.scalar(
                    select(CaseType)
                    .where(
                        func.lower(CaseType.case_type_name) == name.lower(),
                        CaseType.is_active.is_(True),
                    )
                    .order_by(CaseType.case_type_id)
                    .limit(1)
                )
            except SQLAlchemyError as e:
                logger.error("Case type lookup failed for %r: %s", name, str(e), exc_info=True)
                raise StoreError(context={"case_type_name": name}) from e
        if case_type is None:
            raise MissingClassificationError(
                message="Unknown or inactive case type",
                context={
                    "classification_id": payload.case_type_id,
                    "case_type_name": payload.case_type_name,
                },
            )
        return case_type

    async def _insert(self, db: AsyncSession, record: ParentRecord, code: str) -> None:
        try:
            db.add(record)
            await db.flush()
        except CaseVaultError:
            raise
        except Exception as e:
            logger.error("Failed to insert record %s: %s", code, str(e), exc_info=True)
            raise StoreError(
                message="Failed to create the record. Please try again.",
                context={"code": code, "error_type": type(e).__name__},
            ) from e
        logger.info("Record %s created (%s)", code, type(record).__name__)

    @staticmethod
    def _to_response(record: ParentRecord, record_type: str) -> RecordResponse:
        return RecordResponse(
            record_id=record.record_id,
            record_type=record_type,
            case_type_id=record.case_type_id,
            summary=record.summary,
            description=record.description,
            created_by=record.created_by,
            created_at=record.created_at,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
record_service = RecordService()
