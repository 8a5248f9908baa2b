"""
CaseVault Backend - Record Routes
===================================

What:  POST /api/cases and POST /api/backlog. Each creates a record and
       returns the code issued for it (ECSI-25-001, BLG-25-001).
How:   Thin handlers over RecordService. The code and the row commit in the
       request's single transaction (see database.get_db_session).
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.database import get_db_session
from casevault.schemas.document import ErrorResponse
from casevault.schemas.records import RecordCreate, RecordResponse
from casevault.services.record_service import record_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Records"])

_ERRORS = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    422: {"description": "Unknown or inactive case type", "model": ErrorResponse},
    500: {"description": "Record store unavailable", "model": ErrorResponse},
}


@router.post(
    "/cases",
    status_code=201,
    response_model=RecordResponse,
    responses=_ERRORS,
    summary="Create a case and issue its code",
)
async def create_case(
    payload: RecordCreate,
    db: AsyncSession = Depends(get_db_session),
) -> RecordResponse:
    return await record_service.create_case(db, payload)


@router.post(
    "/backlog",
    status_code=201,
    response_model=RecordResponse,
    responses=_ERRORS,
    summary="Create a backlog (gap analysis) ticket and issue its code",
)
async def create_backlog(
    payload: RecordCreate,
    db: AsyncSession = Depends(get_db_session),
) -> RecordResponse:
    return await record_service.create_backlog(db, payload)
