"""
CaseVault Backend - Code Counter Model
========================================

What:  ORM model for the `code_counters` table: one row per (namespace, year).
Who:   Owned exclusively by CounterStore; nothing else reads or writes it.

Table Design:
    - (namespace, year) composite primary key; the conflict target of the
      atomic upsert in CounterStore.
    - last_num: last value handed out. Non-decreasing for a given row.
    - Rows are created lazily on the first allocation of a year and never deleted.

Namespaces:
    CASE               case codes        ECSI-25-001
    BACKLOG            backlog codes     BLG-25-001
    DOCUMENT_CATEGORY  category ids      year is always 0 (not year-scoped)
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, PrimaryKeyConstraint, String, text
from sqlalchemy.orm import Mapped, mapped_column

from casevault.database import Base


class CounterNamespace(str, enum.Enum):
    CASE = "CASE"
    BACKLOG = "BACKLOG"
    DOCUMENT_CATEGORY = "DOCUMENT_CATEGORY"


# Year value used by sequences that are not year-scoped
UNSCOPED_YEAR = 0


class CodeCounter(Base):
    """Durable monotonic counter for one namespace within one 2-digit year."""

    __tablename__ = "code_counters"

    namespace: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Counter namespace: CASE, BACKLOG, DOCUMENT_CATEGORY",
    )

    year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Two-digit year (current year mod 100); 0 for unscoped sequences",
    )

    last_num: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Last number issued in this namespace/year",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        PrimaryKeyConstraint("namespace", "year", name="pk_code_counters"),
    )

    def __repr__(self) -> str:
        return f"<CodeCounter({self.namespace}/{self.year:02d} last_num={self.last_num})>"
