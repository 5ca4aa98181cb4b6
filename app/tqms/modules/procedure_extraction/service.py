from __future__ import annotations

import hashlib
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.tqms.audit import record_event
from app.tqms.constants import (
    AUTO_SYSTEM_ACTOR,
    DOC_TYPE_PROCEDURE,
    EXTRACTION_STATUS_COMPLETED,
    LEVEL_HIGH,
    LEVEL_LOW,
    LEVEL_MEDIUM,
    SYSTEM_ACTOR,
)
from app.tqms.errors import NotFound, NotReady
from app.tqms.modules.document_control.models import Document
from app.tqms.modules.document_control.service import create_document
from app.tqms.modules.procedure_extraction.models import ProcedureExtraction
from app.tqms.utils import Clock, canonical_json, utcnow

logger = logging.getLogger(__name__)

# Cost model, currency-agnostic units
COST_PER_STEP = 50
COST_PER_NON_CONFORMITY = 200


def calculate_maintenance_cost(step_count: int, non_conformity_count: int) -> float:
    return float(step_count * COST_PER_STEP + non_conformity_count * COST_PER_NON_CONFORMITY)


def calculate_margin_impact(conformity_score: float | None, non_conformity_count: int) -> str:
    """
    High:   score < 70 or more than 3 non-conformities
    Medium: score < 85 or more than 1 non-conformity
    Low:    otherwise
    A missing score is treated as 0.
    """
    score = conformity_score or 0
    if score < 70 or non_conformity_count > 3:
        return LEVEL_HIGH
    if score < 85 or non_conformity_count > 1:
        return LEVEL_MEDIUM
    return LEVEL_LOW


def extraction_content_hash(payload: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON form of the extracted procedure."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def default_title(extraction_id: str) -> str:
    return f"Procedure extracted from {extraction_id}"


def get_extraction(s: Session, org_id: str, extraction_id: str) -> ProcedureExtraction:
    stmt = select(ProcedureExtraction).where(
        ProcedureExtraction.org_id == org_id,
        ProcedureExtraction.id == extraction_id,
    )
    ex = s.execute(stmt).scalar_one_or_none()
    if ex is None:
        raise NotFound(f"Procedure extraction {extraction_id} not found for org {org_id}.")
    return ex


def link_extraction_to_document(
    s: Session,
    extraction: ProcedureExtraction,
    document: Document,
    *,
    actor: str | None = None,
    clock: Clock = utcnow,
) -> None:
    """Two-way link: extraction -> document and document -> extraction."""
    extraction.linked_document_id = document.id
    extraction.linked_at = clock()
    document.extraction_id = extraction.id
    document.source_uri = extraction.source_uri
    s.flush()

    record_event(
        s,
        actor=actor,
        action="extraction.link",
        entity_type="ProcedureExtraction",
        entity_id=extraction.id,
        metadata={"org_id": extraction.org_id, "document_id": document.id},
    )


def create_document_from_extraction(
    s: Session,
    *,
    org_id: str,
    extraction_id: str,
    created_by: str = SYSTEM_ACTOR,
    clock: Clock = utcnow,
) -> Document:
    ex = get_extraction(s, org_id, extraction_id)
    if ex.status != EXTRACTION_STATUS_COMPLETED:
        raise NotReady(f"Procedure extraction {extraction_id} is not completed (status: {ex.status}).")

    payload = ex.payload
    title = ex.title or default_title(extraction_id)
    non_conformities = ex.non_conformity_count

    d = create_document(
        s,
        org_id=org_id,
        doc_type=DOC_TYPE_PROCEDURE,
        title=title,
        content_hash=extraction_content_hash(payload),
        created_by=created_by,
        maintenance_cost=calculate_maintenance_cost(ex.step_count, non_conformities),
        margin_impact=calculate_margin_impact(ex.conformity_score, non_conformities),
        clock=clock,
    )
    link_extraction_to_document(s, ex, d, actor=created_by, clock=clock)

    logger.info("Document %s created from procedure extraction %s", d.id, extraction_id)
    return d


def find_unlinked_extractions(s: Session, org_id: str) -> list[str]:
    stmt = (
        select(ProcedureExtraction.id)
        .where(
            ProcedureExtraction.org_id == org_id,
            ProcedureExtraction.status == EXTRACTION_STATUS_COMPLETED,
            ProcedureExtraction.linked_document_id.is_(None),
        )
        .order_by(ProcedureExtraction.extracted_at.asc(), ProcedureExtraction.id.asc())
    )
    return list(s.execute(stmt).scalars().all())


def find_orphaned_links(s: Session, org_id: str) -> list[str]:
    """Extractions whose linked_document_id points at a document that no longer exists."""
    stmt = (
        select(ProcedureExtraction.id)
        .outerjoin(Document, Document.id == ProcedureExtraction.linked_document_id)
        .where(
            ProcedureExtraction.org_id == org_id,
            ProcedureExtraction.linked_document_id.is_not(None),
            Document.id.is_(None),
        )
        .order_by(ProcedureExtraction.extracted_at.asc(), ProcedureExtraction.id.asc())
    )
    return list(s.execute(stmt).scalars().all())


def auto_process_unlinked(s: Session, org_id: str, *, created_by: str = AUTO_SYSTEM_ACTOR, clock: Clock = utcnow) -> int:
    """
    Create documents for every completed, unlinked extraction of a tenant.

    Items are processed sequentially, each inside its own savepoint; a failing
    item is rolled back, logged and skipped while earlier successes are kept.
    Returns the number of documents created.
    """
    unlinked = find_unlinked_extractions(s, org_id)
    logger.info("Auto-processing %d unlinked procedure extractions for org=%s", len(unlinked), org_id)

    processed = 0
    for extraction_id in unlinked:
        try:
            # Savepoint per item: a failed flush only rolls back this extraction
            with s.begin_nested():
                create_document_from_extraction(
                    s,
                    org_id=org_id,
                    extraction_id=extraction_id,
                    created_by=created_by,
                    clock=clock,
                )
        except Exception:
            logger.exception("Failed to process procedure extraction %s (org=%s)", extraction_id, org_id)
            continue
        processed += 1

    logger.info("Auto-processed %d/%d procedure extractions for org=%s", processed, len(unlinked), org_id)
    return processed
