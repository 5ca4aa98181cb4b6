import logging
import uuid

from flask import Flask, g, request
from dotenv import load_dotenv

# Models first: module models import Base from here, and the registry must be complete.
from app.tqms.models import Base  # noqa: F401
from app.tqms.config import load_config
from app.tqms.db import init_db, teardown_db_session
from app.tqms.errors import DocumentControlError, status_code_for
from app.tqms.routes import bp as routes_bp
from app.tqms.modules.document_control.admin import bp as doc_control_bp
from app.tqms.modules.revision_risk.admin import bp as revision_risk_bp
from app.tqms.modules.procedure_extraction.admin import bp as procedure_extraction_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(doc_control_bp, url_prefix="/api/documents")
    app.register_blueprint(revision_risk_bp, url_prefix="/api/risk")
    app.register_blueprint(procedure_extraction_bp, url_prefix="/api/extractions")

    @app.before_request
    def _assign_request_id():
        g.request_id = (request.headers.get("X-Request-ID") or "").strip()[:64] or uuid.uuid4().hex

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(DocumentControlError)
    def _err_domain(e: DocumentControlError):  # type: ignore[no-redef]
        app.logger.info("%s (request_id=%s): %s", e.code, getattr(g, "request_id", None), e)
        return {"error": e.code, "message": str(e)}, status_code_for(e)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return {"error": "not_found", "message": "Resource not found."}, 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return {"error": "internal_error", "message": "Internal server error."}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
