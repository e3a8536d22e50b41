"""Create the documents table backing the report store."""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20261001_0001"
down_revision = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _json_type() -> sa.types.TypeEngine:
    bind = op.get_bind()
    if bind is not None and bind.dialect.name == "postgresql":
        return postgresql.JSONB()
    return sa.JSON()


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if not inspector.has_table("documents"):
        op.create_table(
            "documents",
            sa.Column("path", sa.String(length=512), primary_key=True),
            sa.Column("parent_path", sa.String(length=512), nullable=False),
            sa.Column("document_id", sa.String(length=255), nullable=False),
            sa.Column("data", _json_type(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
        )

    indexes = {index["name"] for index in sa.inspect(bind).get_indexes("documents")}
    if "ix_documents_parent_path" not in indexes:
        op.create_index("ix_documents_parent_path", "documents", ["parent_path"])


def downgrade() -> None:
    op.drop_index("ix_documents_parent_path", table_name="documents")
    op.drop_table("documents")
