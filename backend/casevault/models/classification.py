"""
CaseVault Backend - Case Type (Classification) Model
======================================================

What:  The `case_types` table. A case type classifies case and backlog
       records and partitions both document categories and storage buckets.
Who:   Read by RecordService, CategoryResolver and the ingest pipeline.
       This engine never writes case types.
"""

from sqlalchemy import Boolean, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from casevault.database import Base


class CaseType(Base):
    __tablename__ = "case_types"

    case_type_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Bucket names are derived from this ("Fire Claim" → "expc-fire-claim")
    case_type_name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    def __repr__(self) -> str:
        return f"<CaseType(id={self.case_type_id}, name='{self.case_type_name}')>"
