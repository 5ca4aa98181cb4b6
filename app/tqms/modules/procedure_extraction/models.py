from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.tqms.errors import ValidationError
from app.tqms.models import Base
from app.tqms.utils import load_json_object, utcnow


class ProcedureExtraction(Base):
    """
    Structured procedure produced by the (external) AI analysis pipeline.

    payload_json holds the extracted procedure, e.g.:
        {"title": ..., "objective": ..., "steps": [...], "non_conformities": [...],
         "conformity_score": 0-100, ...}
    """

    __tablename__ = "procedure_extractions"
    __table_args__ = (
        Index("idx_procedure_extractions_org_status", "org_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # pending | processing | completed | failed (only "completed" can be linked)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")

    source_uri: Mapped[str | None] = mapped_column(String(512), nullable=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    extracted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    linked_document_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    @property
    def payload(self) -> dict:
        try:
            return load_json_object(self.payload_json)
        except ValueError:
            raise ValidationError(f"Procedure extraction {self.id} has a malformed payload.") from None

    @property
    def title(self) -> str | None:
        t = self.payload.get("title")
        if isinstance(t, str) and t.strip():
            return t.strip()
        return None

    def _list_field(self, name: str) -> list:
        value = self.payload.get(name) or []
        if not isinstance(value, list):
            raise ValidationError(f"Procedure extraction {self.id}: {name} must be a list.")
        return value

    @property
    def step_count(self) -> int:
        return len(self._list_field("steps"))

    @property
    def non_conformity_count(self) -> int:
        return len(self._list_field("non_conformities"))

    @property
    def conformity_score(self) -> float | None:
        score = self.payload.get("conformity_score")
        if score is None:
            return None
        if isinstance(score, bool):
            raise ValidationError(f"Procedure extraction {self.id}: conformity_score must be a number.")
        try:
            return float(score)
        except (TypeError, ValueError):
            raise ValidationError(f"Procedure extraction {self.id}: conformity_score must be a number.") from None
