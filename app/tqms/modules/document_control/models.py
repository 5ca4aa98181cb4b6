from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.tqms.models import Base
from app.tqms.utils import load_json_object, utcnow


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_org_status", "org_id", "status"),
    )

    # uuid4 string; opaque to callers
    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Tenant; set at creation and never updated
    org_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    doc_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # Draft -> InReview -> Active -> Obsolete
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Draft")
    version: Mapped[str] = mapped_column(String(16), nullable=False, default="0.1")

    content_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    last_revised_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    maintenance_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    margin_impact: Mapped[str] = mapped_column(String(16), nullable=False, default="Low")

    # Back-link to the procedure extraction this document was generated from
    extraction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    source_uri: Mapped[str | None] = mapped_column(String(512), nullable=True)


class DocumentHistory(Base):
    """
    Immutable snapshot of a Document, written only as a side effect of approve/retire.
    """

    __tablename__ = "document_history"
    __table_args__ = (
        Index("idx_document_history_doc_archived", "document_id", "archived_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False)

    # "<version>" for approvals, "retired-<version>" for retirements
    history_key: Mapped[str] = mapped_column(String(64), nullable=False)
    version: Mapped[str] = mapped_column(String(16), nullable=False)

    snapshot_json: Mapped[str] = mapped_column(Text, nullable=False)

    archived_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    approved_by: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    @property
    def snapshot(self) -> dict:
        return load_json_object(self.snapshot_json)
