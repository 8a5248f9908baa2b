"""Create CaseVault tables

Revision ID: 001
Revises: None
Create Date: 2025-03-01 00:00:00.000000+00:00

What:  code_counters, case_types, cases, backlog, document_categories,
       document_metadata, with the partial unique indexes that make category
       creation and version assignment safe under concurrency.

Existing deployments:
    If document_categories already holds rows, the DOCUMENT_CATEGORY counter
    needs no seeding: CategoryResolver floors it at max(category_id).

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    # ── Counters ──────────────────────────────────────────────────────────
    op.create_table(
        "code_counters",
        sa.Column("namespace", sa.String(32), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_num", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("namespace", "year", name="pk_code_counters"),
    )

    # ── Case types ────────────────────────────────────────────────────────
    op.create_table(
        "case_types",
        sa.Column("case_type_id", sa.Integer(), primary_key=True),
        sa.Column("case_type_name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    # ── Parent records ────────────────────────────────────────────────────
    for table, key in (("cases", "case_id"), ("backlog", "backlog_id")):
        columns = [
            sa.Column(key, sa.String(32), primary_key=True),
            sa.Column(
                "case_type_id",
                sa.Integer(),
                sa.ForeignKey("case_types.case_type_id"),
                nullable=False,
            ),
            sa.Column("summary", sa.String(500), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            _timestamp("created_at"),
            sa.Column("deleted_flag", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        ]
        if table == "cases":
            columns.append(
                sa.Column("status", sa.String(50), nullable=False, server_default=sa.text("'created'"))
            )
        op.create_table(table, *columns)

    # ── Document categories ───────────────────────────────────────────────
    op.create_table(
        "document_categories",
        sa.Column("category_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column(
            "case_type_id",
            sa.Integer(),
            sa.ForeignKey("case_types.case_type_id"),
            nullable=False,
        ),
        sa.Column("document_name", sa.String(255), nullable=False),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
    )
    op.create_index(
        "uq_document_categories_active_name",
        "document_categories",
        ["case_type_id", "document_name"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active"),
    )

    # ── Document metadata ─────────────────────────────────────────────────
    op.create_table(
        "document_metadata",
        sa.Column("document_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("parent_id", sa.String(32), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("document_categories.category_id"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("stored_filename", sa.String(512), nullable=False),
        sa.Column("bucket", sa.String(63), nullable=False),
        sa.Column("storage_key", sa.String(1024), nullable=False, unique=True),
        sa.Column("file_type", sa.String(32), nullable=True),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column("uploaded_by", sa.Integer(), nullable=True),
        _timestamp("uploaded_at"),
        sa.Column("is_customer_visible", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index(
        "uq_document_metadata_active_version",
        "document_metadata",
        ["parent_id", "category_id", "version"],
        unique=True,
        postgresql_where=sa.text("is_active AND NOT deleted"),
        sqlite_where=sa.text("is_active AND NOT deleted"),
    )
    op.create_index("idx_document_metadata_parent", "document_metadata", ["parent_id"])


def downgrade() -> None:
    op.drop_index("idx_document_metadata_parent", table_name="document_metadata")
    op.drop_index("uq_document_metadata_active_version", table_name="document_metadata")
    op.drop_table("document_metadata")
    op.drop_index("uq_document_categories_active_name", table_name="document_categories")
    op.drop_table("document_categories")
    op.drop_table("backlog")
    op.drop_table("cases")
    op.drop_table("case_types")
    op.drop_table("code_counters")
