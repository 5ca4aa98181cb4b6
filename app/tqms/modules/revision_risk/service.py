from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.tqms.constants import (
    LEVEL_HIGH,
    LEVEL_LOW,
    LEVEL_MEDIUM,
    RISK_RANK,
    STATUS_ACTIVE,
    STATUS_IN_REVIEW,
    STATUS_OBSOLETE,
)
from app.tqms.modules.document_control.models import Document
from app.tqms.modules.document_control.service import get_document
from app.tqms.modules.procedure_extraction.models import ProcedureExtraction
from app.tqms.utils import Clock, utcnow

logger = logging.getLogger(__name__)

ANALYZED_STATUSES = (STATUS_ACTIVE, STATUS_IN_REVIEW)


@dataclass(frozen=True)
class RiskThresholds:
    warning_days: int = 90
    required_days: int = 180
    min_conformity_score: float = 70
    max_non_conformities: int = 3

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RiskThresholds":
        d = cls()
        return cls(
            warning_days=int(config.get("RISK_WARNING_DAYS", d.warning_days)),
            required_days=int(config.get("RISK_REQUIRED_DAYS", d.required_days)),
            min_conformity_score=float(config.get("RISK_MIN_CONFORMITY_SCORE", d.min_conformity_score)),
            max_non_conformities=int(config.get("RISK_MAX_NON_CONFORMITIES", d.max_non_conformities)),
        )


DEFAULT_THRESHOLDS = RiskThresholds()


@dataclass
class RevisionEvaluation:
    needs_revision: bool = False
    risk_level: str = LEVEL_LOW
    reasons: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def raise_to(self, level: str) -> None:
        # Risk never goes down within one evaluation
        if RISK_RANK[level] > RISK_RANK[self.risk_level]:
            self.risk_level = level

    def add(self, reason: str, recommendation: str) -> None:
        self.reasons.append(reason)
        self.recommendations.append(recommendation)


@dataclass
class RevisionMetrics:
    days_since_revision: int
    conformity_score: float | None
    non_conformity_count: int | None
    maintenance_cost: float


@dataclass
class DocumentAnalysis:
    document_id: str
    title: str
    status: str
    needs_revision: bool
    risk_level: str
    reasons: list[str]
    recommendations: list[str]
    metrics: RevisionMetrics

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def days_since_revision(last_revised_at: datetime, now: datetime) -> int:
    """Whole days elapsed, floored."""
    return (now - last_revised_at).days


def evaluate_revision_need(
    document: Document,
    days: int,
    conformity_score: float | None = None,
    non_conformity_count: int | None = None,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> RevisionEvaluation:
    """
    Pure evaluation of a document's revision need. Checks run in a fixed order;
    each triggered check appends one reason and one recommendation.
    """
    ev = RevisionEvaluation()

    if days >= thresholds.required_days:
        ev.add(
            f"Last revised {days} days ago (>= {thresholds.required_days} days)",
            "Mandatory revision due to elapsed time",
        )
        ev.raise_to(LEVEL_HIGH)
        ev.needs_revision = True
    elif days >= thresholds.warning_days:
        ev.add(
            f"Last revised {days} days ago (approaching the {thresholds.required_days}-day limit)",
            "Schedule a revision soon",
        )
        ev.raise_to(LEVEL_MEDIUM)

    if conformity_score is not None and conformity_score < thresholds.min_conformity_score:
        ev.add(
            f"Low conformity score: {conformity_score:g}% (< {thresholds.min_conformity_score:g}%)",
            "Review the procedure to improve conformity",
        )
        ev.raise_to(LEVEL_HIGH)
        ev.needs_revision = True

    if non_conformity_count is not None and non_conformity_count > thresholds.max_non_conformities:
        ev.add(
            f"Too many non-conformities: {non_conformity_count} (> {thresholds.max_non_conformities})",
            "Correct the non-conformities identified in the procedure extraction",
        )
        ev.raise_to(LEVEL_HIGH)
        ev.needs_revision = True

    if document.margin_impact == LEVEL_HIGH:
        ev.add(
            "Document has a high impact on profit margin",
            "Prioritize revision due to high financial impact",
        )
        ev.raise_to(LEVEL_HIGH)
        ev.needs_revision = True

    if document.status == STATUS_OBSOLETE:
        ev.add(
            "Document is obsolete",
            "Create a new version or archive permanently",
        )

    if not ev.reasons:
        ev.add("Document is in compliance", "Maintain periodic monitoring")

    return ev


def lookup_signals(s: Session, document: Document) -> tuple[float | None, int | None]:
    """
    (conformity_score, non_conformity_count) from the linked procedure extraction.
    Both are None when the document has no linked extraction.
    """
    if not document.extraction_id:
        return None, None
    stmt = select(ProcedureExtraction).where(
        ProcedureExtraction.org_id == document.org_id,
        ProcedureExtraction.id == document.extraction_id,
    )
    ex = s.execute(stmt).scalar_one_or_none()
    if ex is None:
        return None, None
    return ex.conformity_score, ex.non_conformity_count


def analyze(
    s: Session,
    document: Document,
    *,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
    clock: Clock = utcnow,
) -> DocumentAnalysis:
    days = days_since_revision(document.last_revised_at, clock())
    score, nc_count = lookup_signals(s, document)
    ev = evaluate_revision_need(document, days, score, nc_count, thresholds)
    return DocumentAnalysis(
        document_id=document.id,
        title=document.title,
        status=document.status,
        needs_revision=ev.needs_revision,
        risk_level=ev.risk_level,
        reasons=ev.reasons,
        recommendations=ev.recommendations,
        metrics=RevisionMetrics(
            days_since_revision=days,
            conformity_score=score,
            non_conformity_count=nc_count,
            maintenance_cost=document.maintenance_cost,
        ),
    )


def analyze_document(
    s: Session,
    document_id: str,
    *,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
    clock: Clock = utcnow,
) -> DocumentAnalysis:
    return analyze(s, get_document(s, document_id), thresholds=thresholds, clock=clock)


def analyze_organization(
    s: Session,
    org_id: str,
    *,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
    clock: Clock = utcnow,
) -> list[DocumentAnalysis]:
    """
    Analyze every Active/InReview document of a tenant, highest risk first.

    A document whose analysis fails is logged and left out of the result.
    """
    stmt = (
        select(Document)
        .where(Document.org_id == org_id, Document.status.in_(ANALYZED_STATUSES))
        .order_by(Document.created_at.asc(), Document.id.asc())
    )
    documents = list(s.execute(stmt).scalars().all())
    logger.info("Analyzing %d active/in-review documents for org=%s", len(documents), org_id)

    analyses: list[DocumentAnalysis] = []
    for d in documents:
        try:
            with s.begin_nested():
                analyses.append(analyze(s, d, thresholds=thresholds, clock=clock))
        except Exception:
            logger.exception("Revision analysis failed for document %s (org=%s)", d.id, org_id)

    # sorted() is stable: equal-risk documents keep query order
    return sorted(analyses, key=lambda a: -RISK_RANK[a.risk_level])


def summarize_analyses(analyses: list[DocumentAnalysis]) -> dict[str, Any]:
    """Revision report: totals per risk level and the documents that need revision."""
    needs_revision = [a for a in analyses if a.needs_revision]
    return {
        "total": len(analyses),
        "needs_revision": len(needs_revision),
        "by_risk": {
            level: sum(1 for a in analyses if a.risk_level == level)
            for level in (LEVEL_HIGH, LEVEL_MEDIUM, LEVEL_LOW)
        },
        "documents_needing_revision": [
            {
                "document_id": a.document_id,
                "title": a.title,
                "status": a.status,
                "risk_level": a.risk_level,
                "days_since_revision": a.metrics.days_since_revision,
                "conformity_score": a.metrics.conformity_score,
                "reasons": a.reasons,
                "recommendations": a.recommendations,
            }
            for a in needs_revision
        ],
    }
