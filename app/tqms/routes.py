import logging

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.tqms.db import db_session

bp = Blueprint("routes", __name__)
logger = logging.getLogger(__name__)


@bp.get("/health")
def health():
    """Readiness check: app config plus one round-trip to the database."""
    try:
        db_session().execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        db_ok = False
    body = {"ok": db_ok, "env": current_app.config.get("ENV"), "database": "ok" if db_ok else "unavailable"}
    return body, (200 if db_ok else 503)


@bp.get("/healthz")
def healthz():
    """Liveness probe. No DB access."""
    return "ok", 200
