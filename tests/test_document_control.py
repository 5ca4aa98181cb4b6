from datetime import datetime, timedelta

import pytest
from sqlalchemy.dialects import postgresql

from app.tqms import create_app
from app.tqms.db import session_scope
from app.tqms.errors import InvalidTransition, NotFound, ValidationError
from app.tqms.models import AuditEvent, Base
from app.tqms.modules.document_control.models import Document, DocumentHistory
from app.tqms.modules.document_control.service import (
    approve_document,
    create_document,
    document_to_dict,
    get_document_history,
    list_documents_by_org,
    locked_document_select,
    next_major_version,
    retire_document,
    submit_for_review,
)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 1, 15, 9, 30, 0))


def _create(s, clock, **overrides):
    kwargs = {
        "org_id": "A",
        "doc_type": "Procedure",
        "title": "T",
        "content_hash": "h",
        "created_by": "u",
        "clock": clock,
    }
    kwargs.update(overrides)
    return create_document(s, **kwargs)


@pytest.mark.parametrize(
    "current,expected",
    [("0.1", "1.0"), ("0.9", "1.0"), ("1.0", "2.0"), ("3.7", "4.0"), ("12.0", "13.0")],
)
def test_next_major_version_ignores_minor(current, expected):
    assert next_major_version(current) == expected


def test_next_major_version_rejects_garbage():
    with pytest.raises(ValidationError):
        next_major_version("draft")


def test_create_document_starts_as_draft_0_1(app, clock):
    with session_scope(app) as s:
        d = _create(s, clock)
        doc_id = d.id

    with session_scope(app) as s:
        d = s.get(Document, doc_id)
        assert d.status == "Draft"
        assert d.version == "0.1"
        assert d.org_id == "A"
        assert d.doc_type == "Procedure"
        assert d.maintenance_cost == 0
        assert d.margin_impact == "Low"
        assert d.created_at == clock.now
        assert d.last_revised_at == clock.now


def test_create_document_keeps_supplied_risk_metrics(app, clock):
    with session_scope(app) as s:
        d = _create(s, clock, maintenance_cost=400, margin_impact="Medium")
        assert d.maintenance_cost == 400
        assert d.margin_impact == "Medium"


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": ""},
        {"org_id": "  "},
        {"content_hash": ""},
        {"created_by": ""},
        {"doc_type": "Memo"},
        {"margin_impact": "Extreme"},
        {"maintenance_cost": -1},
    ],
)
def test_create_document_validates_input(app, clock, overrides):
    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            _create(s, clock, **overrides)
        assert s.query(Document).count() == 0


def test_first_approval_activates_without_history(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id

    clock.advance(days=3)
    with session_scope(app) as s:
        d = approve_document(s, doc_id, approved_by="mgr", clock=clock)
        assert d.version == "1.0"
        assert d.status == "Active"
        assert d.last_revised_at == clock.now

    with session_scope(app) as s:
        assert get_document_history(s, doc_id) == []


def test_reapproval_archives_previous_active_snapshot(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        approve_document(s, doc_id, approved_by="mgr", clock=clock)

    clock.advance(days=30)
    with session_scope(app) as s:
        before = document_to_dict(s.get(Document, doc_id))
        d = approve_document(s, doc_id, approved_by="mgr2", reason="Annual review", clock=clock)
        assert d.version == "2.0"
        assert d.status == "Active"

    with session_scope(app) as s:
        history = get_document_history(s, doc_id)
        assert len(history) == 1
        h = history[0]
        assert h.version == "1.0"
        assert h.history_key == "1.0"
        assert h.approved_by == "mgr2"
        assert h.reason == "Annual review"
        assert h.archived_at == clock.now
        assert h.snapshot == before
        assert h.snapshot["status"] == "Active"


def test_approve_from_in_review_and_from_nonstandard_minor(app, clock):
    with session_scope(app) as s:
        d = _create(s, clock)
        submit_for_review(s, d.id, actor="author")
        assert d.status == "InReview"
        approve_document(s, d.id, approved_by="mgr", clock=clock)
        assert d.version == "1.0"

        d.version = "3.7"
        s.flush()
        approve_document(s, d.id, approved_by="mgr", clock=clock)
        assert d.version == "4.0"


def test_approve_obsolete_document_fails_without_mutation(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        approve_document(s, doc_id, approved_by="mgr", clock=clock)
        retire_document(s, doc_id, reason="Superseded", clock=clock)

    clock.advance(days=1)
    with session_scope(app) as s:
        with pytest.raises(InvalidTransition, match="obsolete"):
            approve_document(s, doc_id, approved_by="mgr", clock=clock)

    with session_scope(app) as s:
        d = s.get(Document, doc_id)
        assert d.status == "Obsolete"
        assert d.version == "1.0"
        assert d.last_revised_at == clock.now - timedelta(days=1)
        assert len(get_document_history(s, doc_id)) == 1


def test_approve_missing_document_is_not_found(app):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            approve_document(s, "does-not-exist", approved_by="mgr")


def test_retire_archives_with_distinct_key_and_keeps_version(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        approve_document(s, doc_id, approved_by="mgr", clock=clock)
        clock.advance(days=1)
        approve_document(s, doc_id, approved_by="mgr", clock=clock)

    clock.advance(days=1)
    with session_scope(app) as s:
        before = document_to_dict(s.get(Document, doc_id))
        d = retire_document(s, doc_id, clock=clock)
        assert d.status == "Obsolete"
        assert d.version == "2.0"

    with session_scope(app) as s:
        history = get_document_history(s, doc_id)
        assert [h.history_key for h in history] == ["retired-2.0", "1.0"]
        retired = history[0]
        assert retired.version == "2.0"
        assert retired.approved_by == "SYSTEM"
        assert retired.reason == "Document marked obsolete"
        assert retired.snapshot == before


def test_retire_same_version_as_approval_keeps_both_entries(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        approve_document(s, doc_id, approved_by="mgr", clock=clock)
        clock.advance(hours=1)
        approve_document(s, doc_id, approved_by="mgr", clock=clock)  # archives "1.0"
        clock.advance(hours=1)
        s.get(Document, doc_id).version = "1.0"
        s.flush()
        retire_document(s, doc_id, reason="Withdrawn", retired_by="qa", clock=clock)

    with session_scope(app) as s:
        keys = {h.history_key for h in get_document_history(s, doc_id)}
        assert keys == {"1.0", "retired-1.0"}


def test_retire_draft_and_retire_again_are_permitted(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        retire_document(s, doc_id, clock=clock)
        clock.advance(minutes=5)
        retire_document(s, doc_id, reason="Second pass", clock=clock)

    with session_scope(app) as s:
        history = get_document_history(s, doc_id)
        assert len(history) == 2
        assert history[0].reason == "Second pass"
        assert history[0].snapshot["status"] == "Obsolete"
        assert history[1].snapshot["status"] == "Draft"
        assert all(h.history_key == "retired-0.1" for h in history)


def test_retire_missing_document_is_not_found(app):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            retire_document(s, "missing")


def test_submit_for_review_requires_draft(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        approve_document(s, doc_id, approved_by="mgr", clock=clock)
        with pytest.raises(InvalidTransition):
            submit_for_review(s, doc_id)


def test_version_never_decreases_across_lifecycle(app, clock):
    versions = []
    with session_scope(app) as s:
        d = _create(s, clock)
        versions.append(d.version)
        submit_for_review(s, d.id)
        versions.append(d.version)
        for _ in range(3):
            clock.advance(days=1)
            approve_document(s, d.id, approved_by="mgr", clock=clock)
            versions.append(d.version)
        retire_document(s, d.id, clock=clock)
        versions.append(d.version)

    majors = [tuple(int(p) for p in v.split(".")) for v in versions]
    assert majors == sorted(majors)
    assert versions[-1] == "3.0"


def test_list_documents_by_org_is_tenant_scoped_and_repeatable(app, clock):
    with session_scope(app) as s:
        a1 = _create(s, clock, title="A1")
        clock.advance(seconds=1)
        a2 = _create(s, clock, title="A2")
        _create(s, clock, org_id="B", title="B1")
        approve_document(s, a2.id, approved_by="mgr", clock=clock)

    with session_scope(app) as s:
        first = [d.id for d in list_documents_by_org(s, "A")]
        second = [d.id for d in list_documents_by_org(s, "A")]
        assert first == second
        assert set(first) == {a1.id, a2.id}
        assert [d.id for d in list_documents_by_org(s, "A", "Active")] == [a2.id]
        assert [d.id for d in list_documents_by_org(s, "A", "Draft")] == [a1.id]
        assert list_documents_by_org(s, "C") == []
        with pytest.raises(ValidationError):
            list_documents_by_org(s, "A", "Released")


def test_history_is_newest_first(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        for _ in range(4):
            clock.advance(days=7)
            approve_document(s, doc_id, approved_by="mgr", clock=clock)

    with session_scope(app) as s:
        history = get_document_history(s, doc_id)
        assert [h.version for h in history] == ["3.0", "2.0", "1.0"]
        times = [h.archived_at for h in history]
        assert times == sorted(times, reverse=True)
        assert s.query(DocumentHistory).count() == 3


def test_history_of_missing_document_is_not_found(app):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            get_document_history(s, "missing")


def test_transitions_are_audited(app, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock).id
        submit_for_review(s, doc_id, actor="author")
        approve_document(s, doc_id, approved_by="mgr", reason="ok", clock=clock)
        retire_document(s, doc_id, clock=clock)

    with session_scope(app) as s:
        events = s.query(AuditEvent).order_by(AuditEvent.id.asc()).all()
        assert [e.action for e in events] == ["doc.create", "doc.submit", "doc.approve", "doc.retire"]
        assert {e.entity_id for e in events} == {doc_id}
        assert events[2].actor == "mgr"
        assert events[2].reason == "ok"


def test_transitions_lock_the_document_row():
    sql = str(locked_document_select("abc").compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE" in sql


def test_document_api_vertical_slice(client):
    r = client.post(
        "/api/documents/",
        json={"org_id": "A", "type": "Manual", "title": "Quality Manual", "content_hash": "h", "created_by": "u"},
    )
    assert r.status_code == 201
    doc = r.json
    assert doc["status"] == "Draft"
    assert doc["version"] == "0.1"
    assert doc["risk_metrics"] == {"maintenance_cost": 0.0, "margin_impact": "Low"}
    doc_id = doc["id"]

    r = client.post(f"/api/documents/{doc_id}/submit", json={"actor": "author"})
    assert r.status_code == 200
    assert r.json["status"] == "InReview"

    r = client.post(f"/api/documents/{doc_id}/approve", json={"approved_by": "mgr"})
    assert r.json["version"] == "1.0"

    r = client.post(f"/api/documents/{doc_id}/approve", json={"approved_by": "mgr2", "reason": "Revision"})
    assert r.json["version"] == "2.0"

    r = client.post(f"/api/documents/{doc_id}/retire", json={"reason": "Replaced"})
    assert r.status_code == 200
    assert r.json["status"] == "Obsolete"
    assert r.json["version"] == "2.0"

    r = client.get(f"/api/documents/{doc_id}/history")
    keys = [h["history_key"] for h in r.json["history"]]
    assert sorted(keys) == ["1.0", "retired-2.0"]

    r = client.get("/api/documents/", query_string={"org_id": "A", "status": "Obsolete"})
    assert [d["id"] for d in r.json["documents"]] == [doc_id]

    r = client.get(f"/api/documents/{doc_id}")
    assert r.json["title"] == "Quality Manual"


def test_document_api_error_mapping(client):
    r = client.post("/api/documents/", json={"org_id": "A", "type": "Procedure", "title": ""})
    assert r.status_code == 422
    assert r.json["error"] == "validation_error"

    r = client.get("/api/documents/missing")
    assert r.status_code == 404
    assert r.json["error"] == "not_found"

    r = client.get("/api/documents/")
    assert r.status_code == 422

    r = client.post(
        "/api/documents/",
        json={"org_id": "A", "type": "Policy", "title": "P", "content_hash": "h", "created_by": "u"},
    )
    doc_id = r.json["id"]
    client.post(f"/api/documents/{doc_id}/retire", json={})
    r = client.post(f"/api/documents/{doc_id}/approve", json={"approved_by": "mgr"})
    assert r.status_code == 409
    assert r.json["error"] == "invalid_transition"


def test_non_string_fields_are_rejected(app, clock):
    with session_scope(app) as s:
        with pytest.raises(ValidationError, match="title must be a string"):
            _create(s, clock, title=123)
        with pytest.raises(ValidationError):
            _create(s, clock, title="x" * 256)


def test_document_api_rejects_non_string_json(client):
    r = client.post(
        "/api/documents/",
        json={"org_id": "A", "type": "Manual", "title": 123, "content_hash": "h", "created_by": "u"},
    )
    assert r.status_code == 422
    assert r.json["error"] == "validation_error"

    r = client.post(
        "/api/documents/",
        json={"org_id": "A", "type": "Manual", "title": "M", "content_hash": "h", "created_by": "u"},
    )
    doc_id = r.json["id"]

    r = client.post(f"/api/documents/{doc_id}/approve", json={"approved_by": ["mgr"]})
    assert r.status_code == 422
    r = client.post(f"/api/documents/{doc_id}/approve", json={"approved_by": "mgr", "reason": 5})
    assert r.status_code == 422
    r = client.post(f"/api/documents/{doc_id}/retire", json={"retired_by": 7})
    assert r.status_code == 422
    r = client.post(f"/api/documents/{doc_id}/submit", json={"actor": {"id": 1}})
    assert r.status_code == 422

    r = client.get(f"/api/documents/{doc_id}")
    assert r.json["status"] == "Draft"
    assert r.json["version"] == "0.1"


def test_reads_do_not_wait_for_an_open_write_transaction(app, client, clock):
    with session_scope(app) as s:
        doc_id = _create(s, clock, title="Committed").id

    with session_scope(app) as s:
        _create(s, clock, title="In flight")
        r = client.get(f"/api/documents/{doc_id}")
        assert r.status_code == 200
        assert r.json["title"] == "Committed"
        r = client.get("/api/documents/", query_string={"org_id": "A"})
        assert [d["title"] for d in r.json["documents"]] == ["Committed"]

    with session_scope(app) as s:
        assert len(list_documents_by_org(s, "A")) == 2
