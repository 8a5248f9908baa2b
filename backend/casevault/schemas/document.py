"""
CaseVault Backend - Document Schemas
======================================

What:  Pydantic models for document metadata, categories, errors and health.
Why:   Keeps the API contract separate from the ORM models; internal fields
       such as is_active never leave the service.
Who:   Used by routes/documents.py, routes/categories.py and routes/health.py.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class DocumentResponse(BaseModel):
    """
    What:  One stored document version.
    Who:   Returned by the upload route (201) and as list items.
    """

    document_id: int
    parent_id: str = Field(description="Case or backlog code the document belongs to")
    category_id: int
    version: int = Field(ge=1, description="1-based version within (parent, category)")
    original_filename: str
    stored_filename: str
    bucket: str
    storage_key: str
    file_type: Optional[str] = None
    size: int = Field(description="Size in bytes")
    mime_type: str
    uploaded_by: Optional[int] = None
    uploaded_at: datetime
    is_customer_visible: bool

    model_config = {"from_attributes": True}


class DocumentListResponse(BaseModel):
    parent_id: str
    documents: List[DocumentResponse]
    total_count: int


class CategoryResponse(BaseModel):
    category_id: int
    case_type_id: int
    document_name: str
    is_mandatory: bool

    model_config = {"from_attributes": True}


class CategoryListResponse(BaseModel):
    case_type_id: int
    categories: List[CategoryResponse]


# ══════════════════════════════════════════════════════════════════════════
# Error & Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    What:  Standardized error body for every failed request.

    Example:
        {
            "error": "parent_not_found",
            "message": "record with ID 'ECSI-25-404' was not found",
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    object_store: str = Field(description="Object store backend in use: minio, local")
    uptime_seconds: float = Field(description="Seconds since service started")
