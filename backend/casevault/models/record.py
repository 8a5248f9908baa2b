"""
CaseVault Backend - Parent Record Models (cases, backlog)
===========================================================

What:  ORM models for case and backlog (gap-analysis) records.
Why here: Documents attach to these records, and their primary keys are the
       human-readable codes issued by SequentialCodeAllocator.
Who:   Created only through RecordService; read by the ingest pipeline to
       find the record's case type.

Lifecycle:
    1. Code allocated (ECSI-25-001 / BLG-25-001) in the request transaction
    2. Row inserted in the same transaction
    3. Soft-deleted via deleted_flag; a deleted record accepts no uploads
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from casevault.database import Base


class _ParentRecordMixin:
    """Columns shared by cases and backlog tickets."""

    case_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("case_types.case_type_id"),
        nullable=False,
    )
    summary: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    deleted_flag: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )


class Case(_ParentRecordMixin, Base):
    __tablename__ = "cases"

    case_id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Allocated case code, e.g. ECSI-25-001",
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="created",
        server_default=text("'created'"),
    )

    @property
    def record_id(self) -> str:
        return self.case_id

    def __repr__(self) -> str:
        return f"<Case(case_id='{self.case_id}', case_type_id={self.case_type_id})>"


class Backlog(_ParentRecordMixin, Base):
    __tablename__ = "backlog"

    backlog_id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Allocated backlog code, e.g. BLG-25-001",
    )

    @property
    def record_id(self) -> str:
        return self.backlog_id

    def __repr__(self) -> str:
        return f"<Backlog(backlog_id='{self.backlog_id}', case_type_id={self.case_type_id})>"
