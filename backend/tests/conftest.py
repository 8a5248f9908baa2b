"""
CaseVault Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the test suite.
How:   Counter, category and version behaviour runs against a real SQLite
       database (aiosqlite, one file per test) because those guarantees live
       in upsert statements and unique indexes. Pipeline failure paths use
       AsyncMock collaborators. Routes are exercised with httpx + ASGITransport.

Fixture Hierarchy (all function-scoped):
    ├── db_engine          async engine with every table created
    │   ├── session_factory
    │   │   └── db_session
    │   └── seeded_db      case types + one case + one backlog ticket
    ├── object_store       LocalObjectStore under tmp_path, fire-claim bucket present
    ├── mock_db_session    AsyncMock session (no database)
    └── test_client        AsyncClient with DB and object store overridden
"""

import os
import tempfile

# Settings are read at import time: configure before importing casevault
_TEST_ROOT = tempfile.mkdtemp(prefix="casevault_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/app.db"
os.environ["OBJECT_STORE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_ROOT"] = os.path.join(_TEST_ROOT, "objects")
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import casevault.models  # noqa: E402,F401
from casevault.database import Base, get_db_session  # noqa: E402
from casevault.models import Backlog, Case, CaseType, DocumentCategory  # noqa: E402
from casevault.storage.local_store import LocalObjectStore  # noqa: E402

FIRE_CLAIM_ID = 1
MOTOR_CLAIM_ID = 2
RETIRED_TYPE_ID = 3

FIRE_BUCKET = "expc-fire-claim"

CASE_ID = "ECSI-25-001"
BACKLOG_ID = "BLG-25-001"
ORPHAN_CASE_ID = "ECSI-25-009"
DELETED_CASE_ID = "ECSI-25-002"

FIXED_NOW = datetime(2025, 3, 14, 10, 15, 2, 123000, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so concurrent sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/casevault.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def seeded_db(session_factory):
    """
    Case types:  1 Fire Claim, 2 Motor Claim, 3 Retired (inactive)
    Records:     ECSI-25-001 (Fire Claim), BLG-25-001 (Motor Claim),
                 ECSI-25-002 (deleted), ECSI-25-009 (inactive case type)
    Categories:  10 "Invoice" (Fire Claim), 20 "Police Report" (Motor Claim)
    """
    async with session_factory() as session:
        session.add_all([
            CaseType(case_type_id=FIRE_CLAIM_ID, case_type_name="Fire Claim", is_active=True),
            CaseType(case_type_id=MOTOR_CLAIM_ID, case_type_name="Motor  Claim", is_active=True),
            CaseType(case_type_id=RETIRED_TYPE_ID, case_type_name="Retired", is_active=False),
        ])
        await session.flush()
        session.add_all([
            Case(case_id=CASE_ID, case_type_id=FIRE_CLAIM_ID, summary="Warehouse fire"),
            Case(case_id=DELETED_CASE_ID, case_type_id=FIRE_CLAIM_ID, summary="Closed", deleted_flag=True),
            Case(case_id=ORPHAN_CASE_ID, case_type_id=RETIRED_TYPE_ID, summary="Legacy"),
            Backlog(backlog_id=BACKLOG_ID, case_type_id=MOTOR_CLAIM_ID, summary="Gap analysis"),
            DocumentCategory(category_id=10, case_type_id=FIRE_CLAIM_ID, document_name="Invoice"),
            DocumentCategory(category_id=20, case_type_id=MOTOR_CLAIM_ID, document_name="Police Report"),
        ])
        await session.commit()
    return session_factory


@pytest.fixture
def mock_db_session():
    """AsyncMock standing in for AsyncSession where no database is needed."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Object storage
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def object_store(tmp_path):
    store = LocalObjectStore(str(tmp_path / "objects"))
    await store.ensure_bucket(FIRE_BUCKET)
    return store


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(seeded_db, object_store):
    """
    AsyncClient bound to the app, with the request session drawn from the
    seeded test database and the object store replaced by `object_store`.
    """
    from casevault.dependencies import get_object_store
    from casevault.main import app

    async def _test_db_session():
        async with seeded_db() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _test_db_session
    app.dependency_overrides[get_object_store] = lambda: object_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
