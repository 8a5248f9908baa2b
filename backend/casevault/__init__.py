"""
CaseVault Backend - Application Package Initializer
=====================================================

Identifier and document versioning engine for claims case management:
sequential record codes, document categories, per-category versions,
storage keys, and bucket resolution.

Layers:
    ┌─────────────────────────────────────┐
    │   Routes (routes/)                  │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (services/)              │  ← allocation, resolution, ingest
    ├──────────────────┬──────────────────┤
    │ Models & Schemas │ Object storage   │  ← SQLAlchemy / Pydantic │ MinIO, local
    ├──────────────────┴──────────────────┤
    │   Database (database.py)            │  ← async sessions, dialect upserts
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
