"""
CaseVault Backend - Document Metadata Model
=============================================

What:  ORM model for the `document_metadata` table: one row per uploaded
       object version, pointing at (bucket, storage_key) in the object store.
Why:   The object store holds bytes only; every lookup, listing and version
       computation goes through these rows.
Who:   Written by DocumentIngestPipeline, read by VersionCounter and the
       document routes.

Table Design:
    - document_id: database-assigned surrogate key.
    - parent_id: case or backlog code (ECSI-25-001 / BLG-25-001). Not a
      foreign key, since it points into one of two tables.
    - version: 1-based, per (parent_id, category_id).
    - storage_key: unique; embeds version and a millisecond timestamp.
    - bucket: where the object was written. Reads try it first.
    - size, mime_type: set once at insert, never updated.
    - Rows are soft-deleted (deleted = true), never removed.

    Partial unique index on (parent_id, category_id, version) over rows that
    are active and not deleted: two concurrent uploads that computed the same
    version cannot both commit; the loser retries with a fresh version.
    Soft-deleted rows keep their version number, so a deleted v3 is not
    reissued while v4 is still active, but a deleted latest version is.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from casevault.database import Base

# WHERE clause of the partial unique version index; reused as the ON CONFLICT target
ACTIVE_VERSION_WHERE = text("is_active AND NOT deleted")


class DocumentMetadata(Base):
    """
    Metadata for one stored document version.

    Query Patterns:
        - Next version:  SELECT max(version) WHERE parent_id, category_id,
          is_active, NOT deleted  → uses the partial version index
        - List for record:  WHERE parent_id ORDER BY category_id, version
          → uses idx_document_metadata_parent
    """

    __tablename__ = "document_metadata"

    document_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    parent_id: Mapped[str] = mapped_column(String(32), nullable=False)

    category_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("document_categories.category_id"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── File identity ─────────────────────────────────────────────────────
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)

    # Last path segment of storage_key
    stored_filename: Mapped[str] = mapped_column(String(512), nullable=False)

    bucket: Mapped[str] = mapped_column(String(63), nullable=False)

    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)

    file_type: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="Lower-cased extension without the dot",
    )

    # BigInteger: byte sizes above 2 GiB are valid object sizes
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)

    mime_type: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="application/octet-stream",
    )

    # ── Audit ─────────────────────────────────────────────────────────────
    uploaded_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # ── Flags ─────────────────────────────────────────────────────────────
    is_customer_visible: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    __table_args__ = (
        Index(
            "uq_document_metadata_active_version",
            "parent_id",
            "category_id",
            "version",
            unique=True,
            postgresql_where=ACTIVE_VERSION_WHERE,
            sqlite_where=ACTIVE_VERSION_WHERE,
        ),
        Index("idx_document_metadata_parent", "parent_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentMetadata(id={self.document_id}, parent_id='{self.parent_id}', "
            f"category_id={self.category_id}, v{self.version})>"
        )
