"""
CaseVault Backend - Category Resolver
=======================================

What:  Get-or-create of a document category within one case type.
       `resolve()` never returns None: every upload ends up filed under some
       category, the default "General Document" if nothing better is known.
Who:   DocumentIngestPipeline (resolve) and the categories route (list).

Resolution order:
    1. Explicit category id → used if it exists, is active, and belongs to
       the same case type.
    2. Candidate name → active category with that name in the case type.
    3. Create it → id from the DOCUMENT_CATEGORY counter, insert with
       ON CONFLICT DO NOTHING against the active-name unique index.
       No returned row means a concurrent caller created it first: re-select.
    An invalid id or empty name drops to the next step; with no usable name
    the default name is used.

Concurrency:
    The partial unique index makes "two rows for one name" impossible, so
    concurrent resolve() calls for the same (case type, name) converge on
    one id without any in-process lock. A losing caller burns one counter
    value; category ids may have gaps.
"""

import logging
from typing import List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.config import settings
from casevault.database import dialect_insert
from casevault.exceptions import (
    CategoryResolutionError,
    MissingClassificationError,
    StoreError,
)
from casevault.models.category import ACTIVE_CATEGORY_WHERE, DocumentCategory
from casevault.models.classification import CaseType
from casevault.models.counter import UNSCOPED_YEAR, CounterNamespace
from casevault.services.counter_store import CounterStore, counter_store

logger = logging.getLogger(__name__)


def _parse_category_id(raw: Union[int, str, None]) -> Optional[int]:
    """Form fields arrive as strings; anything that is not a positive int is ignored."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value > 0 else None


class CategoryResolver:
    def __init__(
        self,
        store: Optional[CounterStore] = None,
        default_name: Optional[str] = None,
    ):
        self._store = store or counter_store
        self.default_name = (default_name or settings.default_category_name).strip()

    async def resolve(
        self,
        db: AsyncSession,
        case_type_id: Optional[int],
        candidate_name: Optional[str] = None,
        category_id: Union[int, str, None] = None,
    ) -> int:
        """
        Return the id of the category to file a document under.

        Raises:
            MissingClassificationError: case_type_id is missing or names no
                active case type.
            CategoryResolutionError: the store failed during lookup or create.
        """
        try:
            await self._require_classification(db, case_type_id)

            explicit_id = _parse_category_id(category_id)
            if explicit_id is not None:
                found = await self._find_by_id(db, case_type_id, explicit_id)
                if found is not None:
                    return found
                logger.warning(
                    "Category id %r is not an active category of case type %s; "
                    "falling back to name-based resolution",
                    category_id, case_type_id,
                )
            elif category_id not in (None, ""):
                logger.warning("Ignoring non-numeric category id %r", category_id)

            name = (candidate_name or "").strip() or self.default_name
            return await self._get_or_create(db, case_type_id, name)

        except (MissingClassificationError, CategoryResolutionError):
            raise
        except (SQLAlchemyError, StoreError) as e:
            logger.error(
                "Category resolution failed for case type %s: %s",
                case_type_id, str(e),
                exc_info=True,
            )
            raise CategoryResolutionError(
                context={
                    "classification_id": case_type_id,
                    "candidate_name": candidate_name,
                    "category_id": category_id,
                    "error_type": type(e).__name__,
                },
            ) from e

    async def list_categories(self, db: AsyncSession, case_type_id: int) -> List[DocumentCategory]:
        """
        Active categories of a case type, ordered by id, one per name.

        Names are compared trimmed and case-insensitively; the lowest id wins.
        Blank names are skipped.
        """
        result = await db.execute(
            select(DocumentCategory)
            .where(
                DocumentCategory.case_type_id == case_type_id,
                DocumentCategory.is_active.is_(True),
            )
            .order_by(DocumentCategory.category_id)
        )
        seen = set()
        unique: List[DocumentCategory] = []
        for category in result.scalars():
            normalized = (category.document_name or "").strip().lower()
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            unique.append(category)
        return unique

    # ── Internal steps ────────────────────────────────────────────────────

    async def _require_classification(self, db: AsyncSession, case_type_id: Optional[int]) -> None:
        if case_type_id is None:
            raise MissingClassificationError(context={"classification_id": None})
        found = await db.scalar(
            select(CaseType.case_type_id).where(
                CaseType.case_type_id == case_type_id,
                CaseType.is_active.is_(True),
            )
        )
        if found is None:
            raise MissingClassificationError(context={"classification_id": case_type_id})

    async def _find_by_id(self, db: AsyncSession, case_type_id: int, category_id: int) -> Optional[int]:
        return await db.scalar(
            select(DocumentCategory.category_id).where(
                DocumentCategory.category_id == category_id,
                DocumentCategory.case_type_id == case_type_id,
                DocumentCategory.is_active.is_(True),
            )
        )

    async def _find_by_name(self, db: AsyncSession, case_type_id: int, name: str) -> Optional[int]:
        return await db.scalar(
            select(DocumentCategory.category_id)
            .where(
                DocumentCategory.case_type_id == case_type_id,
                DocumentCategory.document_name == name,
                DocumentCategory.is_active.is_(True),
            )
            .order_by(DocumentCategory.category_id)
            .limit(1)
        )

    async def _get_or_create(self, db: AsyncSession, case_type_id: int, name: str) -> int:
        existing = await self._find_by_name(db, case_type_id, name)
        if existing is not None:
            return existing

        # Floor the counter at the current max so seeded ids are never reissued
        max_id = await db.scalar(select(func.max(DocumentCategory.category_id)))
        new_id = await self._store.next_value(
            db,
            CounterNamespace.DOCUMENT_CATEGORY,
            UNSCOPED_YEAR,
            floor=max_id or 0,
        )

        table = DocumentCategory.__table__
        stmt = (
            dialect_insert(db, table)
            .values(
                category_id=new_id,
                case_type_id=case_type_id,
                document_name=name,
                is_mandatory=False,
                is_active=True,
            )
            .on_conflict_do_nothing(
                index_elements=[table.c.case_type_id, table.c.document_name],
                index_where=ACTIVE_CATEGORY_WHERE,
            )
            .returning(table.c.category_id)
        )
        inserted = (await db.execute(stmt)).scalar_one_or_none()
        if inserted is not None:
            logger.info(
                "Created category %d '%s' for case type %d",
                inserted, name, case_type_id,
            )
            return inserted

        winner = await self._find_by_name(db, case_type_id, name)
        if winner is None:
            raise CategoryResolutionError(
                message="Category insert conflicted but no existing category was found",
                context={"classification_id": case_type_id, "candidate_name": name},
            )
        logger.info(
            "Category '%s' for case type %d was created concurrently; using id %d",
            name, case_type_id, winner,
        )
        return winner


# ── Singleton Instance ────────────────────────────────────────────────────
category_resolver = CategoryResolver()
