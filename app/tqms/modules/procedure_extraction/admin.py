from __future__ import annotations

from flask import Blueprint, request

from app.tqms.constants import AUTO_SYSTEM_ACTOR, SYSTEM_ACTOR
from app.tqms.db import db_session
from app.tqms.modules.document_control.service import document_to_dict
from app.tqms.modules.procedure_extraction.service import (
    auto_process_unlinked,
    create_document_from_extraction,
    find_orphaned_links,
    find_unlinked_extractions,
)

bp = Blueprint("procedure_extraction", __name__)


def _created_by(default: str) -> str:
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data.get("created_by"):
        return str(data["created_by"]).strip() or default
    return default


@bp.get("/<org_id>/unlinked")
def unlinked(org_id: str):
    s = db_session()
    return {"org_id": org_id, "extraction_ids": find_unlinked_extractions(s, org_id)}


@bp.get("/<org_id>/orphaned")
def orphaned(org_id: str):
    s = db_session()
    return {"org_id": org_id, "extraction_ids": find_orphaned_links(s, org_id)}


@bp.post("/<org_id>/<extraction_id>/document")
def create_document(org_id: str, extraction_id: str):
    s = db_session()
    d = create_document_from_extraction(
        s,
        org_id=org_id,
        extraction_id=extraction_id,
        created_by=_created_by(SYSTEM_ACTOR),
    )
    s.commit()
    return document_to_dict(d), 201


@bp.post("/<org_id>/auto-process")
def auto_process(org_id: str):
    s = db_session()
    processed = auto_process_unlinked(s, org_id, created_by=_created_by(AUTO_SYSTEM_ACTOR))
    s.commit()
    return {"org_id": org_id, "processed": processed}
