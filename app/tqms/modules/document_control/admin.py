from __future__ import annotations

from typing import Any

from flask import Blueprint, request

from app.tqms.db import db_session
from app.tqms.errors import ValidationError
from app.tqms.modules.document_control.service import (
    approve_document,
    create_document,
    document_to_dict,
    get_document,
    get_document_history,
    history_to_dict,
    list_documents_by_org,
    retire_document,
    submit_for_review,
)

bp = Blueprint("doc_control", __name__)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _optional_text(data: dict[str, Any], field: str) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    return value.strip() or None


def _optional_float(value: Any, field: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number.") from None


@bp.get("/")
def list_documents():
    org_id = (request.args.get("org_id") or "").strip()
    if not org_id:
        raise ValidationError("org_id is required.")
    status = (request.args.get("status") or "").strip() or None
    s = db_session()
    docs = list_documents_by_org(s, org_id, status)
    return {"documents": [document_to_dict(d) for d in docs]}


@bp.post("/")
def new_document():
    s = db_session()
    data = _json_body()
    d = create_document(
        s,
        org_id=data.get("org_id") or "",
        doc_type=data.get("type") or "",
        title=data.get("title") or "",
        content_hash=data.get("content_hash") or "",
        created_by=data.get("created_by") or "",
        maintenance_cost=_optional_float(data.get("maintenance_cost"), "maintenance_cost"),
        margin_impact=data.get("margin_impact") or None,
    )
    s.commit()
    return document_to_dict(d), 201


@bp.get("/<document_id>")
def document_detail(document_id: str):
    s = db_session()
    return document_to_dict(get_document(s, document_id))


@bp.post("/<document_id>/submit")
def submit(document_id: str):
    s = db_session()
    data = _json_body()
    d = submit_for_review(s, document_id, actor=_optional_text(data, "actor"))
    s.commit()
    return document_to_dict(d)


@bp.post("/<document_id>/approve")
def approve(document_id: str):
    s = db_session()
    data = _json_body()
    d = approve_document(
        s,
        document_id,
        approved_by=data.get("approved_by") or "",
        reason=_optional_text(data, "reason"),
    )
    s.commit()
    return document_to_dict(d)


@bp.post("/<document_id>/retire")
def retire(document_id: str):
    s = db_session()
    data = _json_body()
    kwargs: dict[str, Any] = {"reason": _optional_text(data, "reason")}
    retired_by = _optional_text(data, "retired_by")
    if retired_by:
        kwargs["retired_by"] = retired_by
    d = retire_document(s, document_id, **kwargs)
    s.commit()
    return document_to_dict(d)


@bp.get("/<document_id>/history")
def history(document_id: str):
    s = db_session()
    entries = get_document_history(s, document_id)
    return {"history": [history_to_dict(h) for h in entries]}
