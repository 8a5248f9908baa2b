"""
CaseVault Backend - Document Routes
=====================================

What:  Upload, list, download and soft-delete documents of a case or
       backlog record.

Route Inventory:
    POST   /api/records/{parent_id}/documents   multipart upload → 201 metadata
    GET    /api/records/{parent_id}/documents   active documents of the record
    GET    /api/documents/{document_id}/content bytes, via the bucket fallback chain
    DELETE /api/documents/{document_id}         soft delete → 204

Upload form fields:
    file                 required
    category_id          optional; ignored when it is not an active category
                         of the record's case type
    category_name        optional; created on first use
    is_customer_visible  optional, default false
    uploaded_by          optional user id; the system user when absent
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.database import get_db_session
from casevault.dependencies import get_bucket_resolver, get_ingest_pipeline
from casevault.schemas.document import DocumentListResponse, DocumentResponse, ErrorResponse
from casevault.services.bucket_resolver import BucketResolver
from casevault.services.document_service import document_service
from casevault.services.ingest_pipeline import DocumentIngestPipeline, IngestRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Documents"])


@router.post(
    "/records/{parent_id}/documents",
    status_code=201,
    response_model=DocumentResponse,
    responses={
        400: {"description": "Empty or oversized file", "model": ErrorResponse},
        404: {"description": "Record not found", "model": ErrorResponse},
        422: {"description": "Record has no valid case type", "model": ErrorResponse},
        502: {"description": "Object store write failed", "model": ErrorResponse},
        500: {"description": "Stored but not recorded; needs reconciliation", "model": ErrorResponse},
    },
    summary="Upload a document version to a case or backlog record",
)
async def upload_document(
    parent_id: str,
    file: UploadFile = File(..., description="Document to store"),
    category_id: Optional[str] = Form(default=None),
    category_name: Optional[str] = Form(default=None),
    is_customer_visible: bool = Form(default=False),
    uploaded_by: Optional[int] = Form(default=None),
    db: AsyncSession = Depends(get_db_session),
    pipeline: DocumentIngestPipeline = Depends(get_ingest_pipeline),
) -> DocumentResponse:
    content = await file.read()
    outcome = await pipeline.ingest(
        db,
        IngestRequest(
            parent_id=parent_id,
            filename=file.filename or "",
            content=content,
            content_type=file.content_type,
            category_id=category_id,
            category_name=category_name,
            uploaded_by=uploaded_by,
            is_customer_visible=is_customer_visible,
        ),
    )
    return DocumentResponse.model_validate(outcome.document)


@router.get(
    "/records/{parent_id}/documents",
    response_model=DocumentListResponse,
    responses={404: {"description": "Record not found", "model": ErrorResponse}},
    summary="List the active documents of a record",
)
async def list_documents(
    parent_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> DocumentListResponse:
    documents = await document_service.list_for_parent(db, parent_id)
    return DocumentListResponse(
        parent_id=parent_id,
        documents=[DocumentResponse.model_validate(d) for d in documents],
        total_count=len(documents),
    )


@router.get(
    "/documents/{document_id}/content",
    response_class=Response,
    responses={404: {"description": "Document or object not found", "model": ErrorResponse}},
    summary="Download a document's content",
)
async def download_document(
    document_id: int,
    db: AsyncSession = Depends(get_db_session),
    resolver: BucketResolver = Depends(get_bucket_resolver),
) -> Response:
    content = await document_service.fetch_content(db, document_id, resolver)
    filename = content.document.original_filename
    return Response(
        content=content.data,
        media_type=content.document.mime_type,
        headers={
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(filename)}",
            "X-Storage-Bucket": content.bucket,
        },
    )


@router.delete(
    "/documents/{document_id}",
    status_code=204,
    response_class=Response,
    responses={404: {"description": "Document not found", "model": ErrorResponse}},
    summary="Soft-delete a document",
)
async def delete_document(
    document_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await document_service.soft_delete(db, document_id)
    return Response(status_code=204)
