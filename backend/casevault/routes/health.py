"""
CaseVault Backend - Health Check Route
========================================

What:  GET /health for container probes and load balancers.
How:   SELECT 1 against the database. The object store is reported by
       backend name only; probing it would need a bucket to exist.

Status levels:
    healthy:   database reachable
    degraded:  database unreachable (still HTTP 200 so probes can read the body)
"""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text

from casevault import __version__
from casevault.database import engine
from casevault.dependencies import get_object_store
from casevault.schemas.document import HealthResponse
from casevault.storage import ObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(store: ObjectStore = Depends(get_object_store)) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "degraded"
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        object_store=store.backend_name,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
