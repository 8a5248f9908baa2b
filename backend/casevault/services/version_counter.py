"""
CaseVault Backend - Version Counter
=====================================

What:  Next version number for a (parent record, category) pair.
How:   SELECT max(version) over rows that are active and not deleted; the
       next version is that plus one, or 1 when there is none.
Who:   DocumentIngestPipeline, once per insert attempt.

Read-only. Two uploads that read the same max compute the same version; the
partial unique index on document_metadata rejects the second insert and the
pipeline recomputes.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.exceptions import VersionQueryError
from casevault.models.document import DocumentMetadata

logger = logging.getLogger(__name__)


class VersionCounter:
    async def next_version(self, db: AsyncSession, parent_id: str, category_id: int) -> int:
        """
        Returns:
            int >= 1.

        Raises:
            VersionQueryError: the query failed. Not retried.
        """
        stmt = select(func.max(DocumentMetadata.version)).where(
            DocumentMetadata.parent_id == parent_id,
            DocumentMetadata.category_id == category_id,
            DocumentMetadata.is_active.is_(True),
            DocumentMetadata.deleted.is_(False),
        )
        try:
            current = await db.scalar(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Version lookup failed for %s/category %s: %s",
                parent_id, category_id, str(e),
                exc_info=True,
            )
            raise VersionQueryError(
                context={
                    "parent_id": parent_id,
                    "category_id": category_id,
                    "error_type": type(e).__name__,
                },
            ) from e
        return (current or 0) + 1


# ── Singleton Instance ────────────────────────────────────────────────────
version_counter = VersionCounter()
