"""
CaseVault Backend - Record Schemas
====================================

What:  Request/response models for creating case and backlog records.
Who:   Used by routes/records.py and RecordService.

Classification input:
    A record names its case type either by id or by name. At least one must
    be given; when both are, the id wins and the name is ignored.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class RecordCreate(BaseModel):
    """Payload for POST /api/cases and POST /api/backlog."""

    case_type_id: Optional[int] = Field(default=None, ge=1, description="Case type id")
    case_type_name: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Case type name, used when no id is given",
    )
    summary: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None)
    created_by: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def require_classification(self) -> "RecordCreate":
        if self.case_type_id is None and not (self.case_type_name or "").strip():
            raise ValueError("Either case_type_id or case_type_name is required")
        return self


class RecordResponse(BaseModel):
    """
    What:  A created record with its issued code.
    Who:   Returned with 201 Created by the record creation routes.
    """

    record_id: str = Field(description="Issued code, e.g. ECSI-25-001 or BLG-25-001")
    record_type: str = Field(description="'case' or 'backlog'")
    case_type_id: int
    summary: str
    description: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}
