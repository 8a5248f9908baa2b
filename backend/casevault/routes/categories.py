"""
CaseVault Backend - Category Routes
=====================================

GET /api/case-types/{case_type_id}/categories

Active categories of a case type, ordered by id, one entry per name
(names compared case-insensitively, lowest id kept). Older data holds
duplicate names created before the unique index existed.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.database import get_db_session
from casevault.exceptions import NotFoundError
from casevault.schemas.document import CategoryListResponse, CategoryResponse, ErrorResponse
from casevault.services.category_resolver import category_resolver
from casevault.services.record_service import record_service

router = APIRouter(prefix="/api", tags=["Categories"])


@router.get(
    "/case-types/{case_type_id}/categories",
    response_model=CategoryListResponse,
    responses={404: {"description": "Unknown or inactive case type", "model": ErrorResponse}},
    summary="List document categories of a case type",
)
async def list_categories(
    case_type_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> CategoryListResponse:
    if await record_service.get_classification(db, case_type_id) is None:
        raise NotFoundError(resource="case type", resource_id=str(case_type_id))
    categories = await category_resolver.list_categories(db, case_type_id)
    return CategoryListResponse(
        case_type_id=case_type_id,
        categories=[CategoryResponse.model_validate(c) for c in categories],
    )
