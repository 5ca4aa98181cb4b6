"""Tests for the maintenance scripts (init, release, report, start)."""
from datetime import timedelta

import pytest
from sqlalchemy import inspect

from app.tqms.db import create_db_engine
from app.tqms.modules.document_control.service import approve_document, create_document
from app.tqms.utils import utcnow
from scripts._db_utils import script_session
from scripts.init_db import create_tables
from scripts.release import REQUIRED_TABLES, missing_tables, run_release
from scripts.revision_report import build_report
from scripts.start import gunicorn_argv


def test_create_tables(tmp_path):
    url = f"sqlite:///{tmp_path/'init.db'}"
    tables = create_tables(database_url=url)
    assert set(REQUIRED_TABLES) <= set(tables)
    assert missing_tables(url) == []


def test_release_migrates_empty_database(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("ENV", "test")
    assert missing_tables(url) == list(REQUIRED_TABLES)

    run_release()

    engine = create_db_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert set(REQUIRED_TABLES) <= tables
    assert "alembic_version" in tables


def test_release_refuses_sqlite_in_production(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="sqlite"):
        run_release()


def test_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        run_release()


def test_revision_report(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path/'report.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    create_tables(database_url=url)

    stale = utcnow() - timedelta(days=400)
    with script_session(url) as s:
        d = create_document(
            s, org_id="A", doc_type="Manual", title="Old manual", content_hash="h", created_by="u", clock=lambda: stale
        )
        approve_document(s, d.id, approved_by="mgr", clock=lambda: stale)
        create_document(s, org_id="A", doc_type="Policy", title="New draft", content_hash="h", created_by="u")

    report = build_report("A")
    assert report["total"] == 1
    assert report["needs_revision"] == 1
    assert report["documents_needing_revision"][0]["title"] == "Old manual"
    assert report["by_risk"]["High"] == 1


def test_gunicorn_argv_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("WEB_CONCURRENCY", "4")
    monkeypatch.delenv("GUNICORN_TIMEOUT", raising=False)
    argv = gunicorn_argv()
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:9000"
    assert argv[argv.index("--workers") + 1] == "4"
    assert argv[argv.index("--timeout") + 1] == "60"


@pytest.mark.parametrize("port", ["0", "70000", "http"])
def test_gunicorn_argv_rejects_bad_port(monkeypatch, port):
    monkeypatch.setenv("PORT", port)
    with pytest.raises(ValueError, match="PORT"):
        gunicorn_argv()
