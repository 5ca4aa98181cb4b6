from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from app.tqms.audit import record_event
from app.tqms.constants import (
    INITIAL_VERSION,
    LEVEL_LOW,
    STATUS_ACTIVE,
    STATUS_DRAFT,
    STATUS_IN_REVIEW,
    STATUS_OBSOLETE,
    SYSTEM_ACTOR,
    VALID_DOC_TYPES,
    VALID_MARGIN_IMPACTS,
    VALID_STATUSES,
)
from app.tqms.errors import InvalidTransition, NotFound, ValidationError
from app.tqms.modules.document_control.models import Document, DocumentHistory
from app.tqms.utils import Clock, canonical_json, iso_or_none, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETIRE_REASON = "Document marked obsolete"
TITLE_MAX_LENGTH = 255


def next_major_version(current: str) -> str:
    """
    Advance a "major.minor" version by one whole major step.

    The minor component is ignored: "0.1" -> "1.0", "1.0" -> "2.0", "3.7" -> "4.0".
    """
    major_raw = (current or "").strip().split(".", 1)[0]
    try:
        major = int(major_raw)
    except ValueError:
        raise ValidationError(f"Unsupported version format: {current!r}") from None
    if major < 0:
        raise ValidationError(f"Unsupported version format: {current!r}")
    if major == 0:
        return "1.0"
    return f"{major + 1}.0"


def retired_history_key(version: str) -> str:
    return f"retired-{version}"


def document_to_dict(d: Document) -> dict[str, Any]:
    return {
        "id": d.id,
        "org_id": d.org_id,
        "type": d.doc_type,
        "title": d.title,
        "status": d.status,
        "version": d.version,
        "content_hash": d.content_hash,
        "metadata": {
            "created_by": d.created_by,
            "created_at": iso_or_none(d.created_at),
            "last_revised_at": iso_or_none(d.last_revised_at),
        },
        "risk_metrics": {
            "maintenance_cost": d.maintenance_cost,
            "margin_impact": d.margin_impact,
        },
        "extraction_id": d.extraction_id,
        "source_uri": d.source_uri,
    }


def history_to_dict(h: DocumentHistory) -> dict[str, Any]:
    return {
        "document_id": h.document_id,
        "history_key": h.history_key,
        "version": h.version,
        "document_snapshot": h.snapshot,
        "archived_at": iso_or_none(h.archived_at),
        "approved_by": h.approved_by,
        "reason": h.reason,
    }


def _require_text(value: str | None, field: str) -> str:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    v = (value or "").strip()
    if not v:
        raise ValidationError(f"{field} is required.")
    return v


def create_document(
    s: Session,
    *,
    org_id: str,
    doc_type: str,
    title: str,
    content_hash: str,
    created_by: str,
    maintenance_cost: float | None = None,
    margin_impact: str | None = None,
    clock: Clock = utcnow,
) -> Document:
    """Create a Draft document at version 0.1."""
    org_id = _require_text(org_id, "org_id")
    doc_type = _require_text(doc_type, "type")
    title = _require_text(title, "title")
    content_hash = _require_text(content_hash, "content_hash")
    created_by = _require_text(created_by, "created_by")

    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"title must be at most {TITLE_MAX_LENGTH} characters.")

    if doc_type not in VALID_DOC_TYPES:
        raise ValidationError(f"Invalid type. Must be one of: {', '.join(VALID_DOC_TYPES)}")

    cost = 0.0 if maintenance_cost is None else float(maintenance_cost)
    if cost < 0:
        raise ValidationError("maintenance_cost must be non-negative.")

    impact = margin_impact or LEVEL_LOW
    if impact not in VALID_MARGIN_IMPACTS:
        raise ValidationError(f"Invalid margin_impact. Must be one of: {', '.join(VALID_MARGIN_IMPACTS)}")

    now = clock()
    d = Document(
        id=str(uuid.uuid4()),
        org_id=org_id,
        doc_type=doc_type,
        title=title,
        status=STATUS_DRAFT,
        version=INITIAL_VERSION,
        content_hash=content_hash,
        created_by=created_by,
        created_at=now,
        last_revised_at=now,
        maintenance_cost=cost,
        margin_impact=impact,
    )
    s.add(d)
    s.flush()

    record_event(
        s,
        actor=created_by,
        action="doc.create",
        entity_type="Document",
        entity_id=d.id,
        metadata={"org_id": org_id, "type": doc_type, "version": d.version},
    )
    logger.info("Document created id=%s org=%s type=%s", d.id, org_id, doc_type)
    return d


def get_document(s: Session, document_id: str) -> Document:
    d = s.get(Document, document_id)
    if d is None:
        raise NotFound(f"Document {document_id} not found.")
    return d


def locked_document_select(document_id: str) -> Select:
    """
    SELECT ... FOR UPDATE for a read-modify-write transition.

    populate_existing refreshes an instance already in the identity map so the
    transition is computed from the locked row, not a stale copy.
    """
    return (
        select(Document)
        .where(Document.id == document_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _lock_document(s: Session, document_id: str) -> Document:
    d = s.execute(locked_document_select(document_id)).scalar_one_or_none()
    if d is None:
        raise NotFound(f"Document {document_id} not found.")
    return d


def _archive(
    s: Session,
    d: Document,
    *,
    history_key: str,
    approved_by: str,
    reason: str | None,
    now: datetime,
) -> DocumentHistory:
    h = DocumentHistory(
        document_id=d.id,
        history_key=history_key,
        version=d.version,
        snapshot_json=canonical_json(document_to_dict(d)),
        archived_at=now,
        approved_by=approved_by,
        reason=reason,
    )
    s.add(h)
    return h


def submit_for_review(
    s: Session,
    document_id: str,
    *,
    actor: str | None = None,
) -> Document:
    """Draft -> InReview."""
    d = _lock_document(s, document_id)
    if d.status != STATUS_DRAFT:
        raise InvalidTransition(f"Only Draft documents can be submitted for review (status: {d.status}).")

    d.status = STATUS_IN_REVIEW
    s.flush()

    record_event(
        s,
        actor=actor,
        action="doc.submit",
        entity_type="Document",
        entity_id=d.id,
        metadata={"version": d.version},
    )
    return d


def approve_document(
    s: Session,
    document_id: str,
    *,
    approved_by: str,
    reason: str | None = None,
    clock: Clock = utcnow,
) -> Document:
    """
    Activate a document and advance its major version.

    Allowed from Draft, InReview and Active. When the document is already Active,
    the superseded state is archived under its current version first.
    """
    approved_by = _require_text(approved_by, "approved_by")
    d = _lock_document(s, document_id)

    if d.status == STATUS_OBSOLETE:
        raise InvalidTransition("Cannot approve an obsolete document.")

    from_version = d.version
    new_version = next_major_version(from_version)
    now = clock()

    archived = False
    if d.status == STATUS_ACTIVE:
        _archive(s, d, history_key=from_version, approved_by=approved_by, reason=reason, now=now)
        archived = True

    d.status = STATUS_ACTIVE
    d.version = new_version
    d.last_revised_at = now
    s.flush()

    record_event(
        s,
        actor=approved_by,
        action="doc.approve",
        entity_type="Document",
        entity_id=d.id,
        reason=reason,
        metadata={"from": from_version, "to": new_version, "archived": archived},
    )
    logger.info("Document approved id=%s %s -> %s", d.id, from_version, new_version)
    return d


def retire_document(
    s: Session,
    document_id: str,
    *,
    reason: str | None = None,
    retired_by: str = SYSTEM_ACTOR,
    clock: Clock = utcnow,
) -> Document:
    """
    Mark a document Obsolete, archiving its current state as "retired-<version>".

    Version is left unchanged. Retiring an already Obsolete document is accepted
    and archives another snapshot.
    """
    retired_by = _require_text(retired_by, "retired_by") if retired_by else SYSTEM_ACTOR
    d = _lock_document(s, document_id)
    now = clock()
    reason = reason or DEFAULT_RETIRE_REASON

    previous_status = d.status
    _archive(
        s,
        d,
        history_key=retired_history_key(d.version),
        approved_by=retired_by,
        reason=reason,
        now=now,
    )

    d.status = STATUS_OBSOLETE
    d.last_revised_at = now
    s.flush()

    record_event(
        s,
        actor=retired_by,
        action="doc.retire",
        entity_type="Document",
        entity_id=d.id,
        reason=reason,
        metadata={"version": d.version, "from_status": previous_status},
    )
    if previous_status == STATUS_OBSOLETE:
        logger.warning("Document %s retired again while already Obsolete", d.id)
    return d


def list_documents_by_org(s: Session, org_id: str, status: str | None = None) -> list[Document]:
    if status is not None and status not in VALID_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    stmt = select(Document).where(Document.org_id == org_id)
    if status is not None:
        stmt = stmt.where(Document.status == status)
    stmt = stmt.order_by(Document.created_at.asc(), Document.id.asc())
    return list(s.execute(stmt).scalars().all())


def get_document_history(s: Session, document_id: str) -> list[DocumentHistory]:
    """History snapshots, most recently archived first."""
    get_document(s, document_id)
    stmt = (
        select(DocumentHistory)
        .where(DocumentHistory.document_id == document_id)
        .order_by(DocumentHistory.archived_at.desc(), DocumentHistory.id.desc())
    )
    return list(s.execute(stmt).scalars().all())
