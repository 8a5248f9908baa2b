"""
CaseVault Backend - Document Category Model
=============================================

What:  The `document_categories` table: named document kinds ("Invoice",
       "Photo Evidence") scoped to one case type.
Who:   Read and created by CategoryResolver; listed by the categories route.

Table Design:
    - category_id is assigned from the DOCUMENT_CATEGORY counter, not by the
      database, so ids stay unique even when pre-seeded rows exist.
    - Partial unique index on (case_type_id, document_name) over active rows:
      two concurrent get-or-create calls for the same name cannot both insert.
      The loser's ON CONFLICT DO NOTHING returns no row and it re-selects.
    - Categories are soft-disabled (is_active = false), never deleted, since
      document rows keep pointing at them.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from casevault.database import Base

# WHERE clause of the partial unique index; reused as the ON CONFLICT target
ACTIVE_CATEGORY_WHERE = text("is_active")


class DocumentCategory(Base):
    __tablename__ = "document_categories"

    category_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        comment="Issued by the DOCUMENT_CATEGORY counter",
    )

    case_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("case_types.case_type_id"),
        nullable=False,
    )

    # ── Display name ──────────────────────────────────────────────────────
    # Also embedded in storage keys (separators replaced), so renaming a
    # category never moves existing objects.
    document_name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_mandatory: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index(
            "uq_document_categories_active_name",
            "case_type_id",
            "document_name",
            unique=True,
            postgresql_where=ACTIVE_CATEGORY_WHERE,
            sqlite_where=ACTIVE_CATEGORY_WHERE,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentCategory(id={self.category_id}, case_type_id={self.case_type_id}, "
            f"name='{self.document_name}')>"
        )
