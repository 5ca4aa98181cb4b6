"""create document control, procedure extraction and audit tables

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 09:12:41.208114

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create documents, document_history, procedure_extractions and audit_events tables."""
    # Check if tables already exist (idempotent; init_db.py may have created them)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor", sa.String(128), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("org_id", sa.String(64), nullable=False),
            sa.Column("doc_type", sa.String(32), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="Draft"),
            sa.Column("version", sa.String(16), nullable=False, server_default="0.1"),
            sa.Column("content_hash", sa.String(128), nullable=False),
            sa.Column("created_by", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("last_revised_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("maintenance_cost", sa.Float(), nullable=False, server_default="0"),
            sa.Column("margin_impact", sa.String(16), nullable=False, server_default="Low"),
            sa.Column("extraction_id", sa.String(128), nullable=True),
            sa.Column("source_uri", sa.String(512), nullable=True),
        )
        op.create_index("ix_documents_org_id", "documents", ["org_id"])
        op.create_index("idx_documents_org_status", "documents", ["org_id", "status"])

    if "document_history" not in existing_tables:
        op.create_table(
            "document_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("document_id", sa.String(36), sa.ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("history_key", sa.String(64), nullable=False),
            sa.Column("version", sa.String(16), nullable=False),
            sa.Column("snapshot_json", sa.Text(), nullable=False),
            sa.Column("archived_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("approved_by", sa.String(128), nullable=False),
            sa.Column("reason", sa.String(512), nullable=True),
        )
        op.create_index("idx_document_history_doc_archived", "document_history", ["document_id", "archived_at"])

    if "procedure_extractions" not in existing_tables:
        op.create_table(
            "procedure_extractions",
            sa.Column("id", sa.String(128), primary_key=True),
            sa.Column("org_id", sa.String(64), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("source_uri", sa.String(512), nullable=True),
            sa.Column("payload_json", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("extracted_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("linked_document_id", sa.String(36), nullable=True),
            sa.Column("linked_at", sa.DateTime(), nullable=True),
        )
        op.create_index("idx_procedure_extractions_org_status", "procedure_extractions", ["org_id", "status"])


def downgrade() -> None:
    op.drop_index("idx_procedure_extractions_org_status", table_name="procedure_extractions")
    op.drop_table("procedure_extractions")
    op.drop_index("idx_document_history_doc_archived", table_name="document_history")
    op.drop_table("document_history")
    op.drop_index("idx_documents_org_status", table_name="documents")
    op.drop_index("ix_documents_org_id", table_name="documents")
    op.drop_table("documents")
    op.drop_table("audit_events")
