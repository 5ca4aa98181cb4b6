from __future__ import annotations

from flask import Blueprint, current_app, request

from app.tqms.db import db_session
from app.tqms.modules.revision_risk.service import (
    RiskThresholds,
    analyze_document,
    analyze_organization,
    summarize_analyses,
)

bp = Blueprint("revision_risk", __name__)


def _thresholds() -> RiskThresholds:
    return RiskThresholds.from_config(current_app.config)


@bp.get("/documents/<document_id>")
def document_analysis(document_id: str):
    s = db_session()
    return analyze_document(s, document_id, thresholds=_thresholds()).to_dict()


@bp.get("/orgs/<org_id>")
def organization_analysis(org_id: str):
    s = db_session()
    analyses = analyze_organization(s, org_id, thresholds=_thresholds())
    out = {"org_id": org_id, "analyses": [a.to_dict() for a in analyses]}
    if (request.args.get("summary") or "").strip() in ("1", "true", "yes"):
        out["summary"] = summarize_analyses(analyses)
    return out
