"""
CaseVault Backend - FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers;
       lifespan() configures logging, validates settings and creates the
       object store on startup, and disposes the engine on shutdown.
Who:   uvicorn (`uvicorn casevault.main:app`), tests.

Exception → HTTP status:
    ValidationError              400
    NotFoundError                404  (ParentNotFoundError, exhausted bucket chain)
    ObjectNotFoundError          404
    MissingClassificationError   422
    UploadError                  502
    ObjectStoreError             502
    MetadataPersistError         500  (logged at ERROR for reconciliation)
    StoreError                   500
    CategoryResolutionError      500
    VersionQueryError            500
    anything else                500

    Every error body carries `error`, `message` and `request_id`. The
    exception's context dict is logged server-side; only ValidationError
    returns it to the client, since that context describes the client's input.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from casevault import __version__
from casevault.config import settings
from casevault.database import dispose_engine
from casevault.exceptions import (
    CaseVaultError,
    CategoryResolutionError,
    MetadataPersistError,
    MissingClassificationError,
    NotFoundError,
    ObjectNotFoundError,
    ObjectStoreError,
    ParentNotFoundError,
    StoreError,
    UploadError,
    ValidationError,
    VersionQueryError,
)
from casevault.middleware.logging import RequestLoggingMiddleware
from casevault.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var
from casevault.routes import categories, documents, health, records
from casevault.storage import build_object_store

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure root logging once at startup.

    Format: 2025-03-14T10:15:02 [INFO] casevault.services.code_allocator [a1b2c3d4e5f6]: Allocated code ECSI-25-001
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("CaseVault Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    if getattr(app.state, "object_store", None) is None:
        app.state.object_store = build_object_store(settings)
    logger.info(
        "Object store: %s | bucket policy: %s | read fallbacks: %s",
        app.state.object_store.backend_name,
        settings.bucket_policy,
        ", ".join(settings.fallback_buckets_list) or "(none)",
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("CaseVault Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

# Most specific first; the first isinstance match wins
ERROR_MAP: Tuple[Tuple[Type[CaseVaultError], int, str], ...] = (
    (ValidationError, 400, "validation_error"),
    (ParentNotFoundError, 404, "parent_not_found"),
    (NotFoundError, 404, "not_found"),
    (ObjectNotFoundError, 404, "not_found"),
    (MissingClassificationError, 422, "missing_classification"),
    (UploadError, 502, "upload_failed"),
    (ObjectStoreError, 502, "object_store_error"),
    (MetadataPersistError, 500, "metadata_persist_failed"),
    (CategoryResolutionError, 500, "category_resolution_failed"),
    (VersionQueryError, 500, "version_query_failed"),
    (StoreError, 500, "store_unavailable"),
)

_GENERIC_SERVER_MESSAGE = "An internal error occurred. Please try again later."


def classify_error(exc: CaseVaultError) -> Tuple[int, str]:
    """HTTP status and machine-readable code for an application error."""
    for exc_type, status, code in ERROR_MAP:
        if isinstance(exc, exc_type):
            return status, code
    return 500, "server_error"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CaseVaultError)
    async def handle_casevault_error(request: Request, exc: CaseVaultError):
        rid = request_id_var.get("")
        status, code = classify_error(exc)

        if isinstance(exc, MetadataPersistError):
            logger.error("[%s] RECONCILE %s: %s | Context: %s", rid, code, exc.message, exc.context)
        elif status >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, code, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s | Context: %s", rid, code, exc.message, exc.context)

        content: Dict[str, object] = {
            "error": code,
            "message": exc.message,
            "request_id": rid,
        }
        if isinstance(exc, ValidationError):
            content["details"] = exc.context
        elif isinstance(exc, NotFoundError) and exc.tried_buckets:
            content["details"] = {"tried_buckets": exc.tried_buckets}
        elif isinstance(exc, (StoreError, CategoryResolutionError, VersionQueryError)):
            content["message"] = _GENERIC_SERVER_MESSAGE

        return JSONResponse(status_code=status, content=content)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="CaseVault API",
        description=(
            "Case and backlog record codes, document categories, versioned "
            "document storage and retrieval for claims case management."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition: RequestID runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Storage-Bucket", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(records.router)
    app.include_router(documents.router)
    app.include_router(categories.router)
    app.include_router(health.router)

    return app


app = create_app()
