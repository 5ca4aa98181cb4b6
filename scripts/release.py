"""
Release phase: migrate the database to head and verify the schema.

Refuses to run without DATABASE_URL, and refuses SQLite when ENV=production.

Usage:
  python scripts/release.py
  python scripts/release.py --revision 3f1a9c2e7b10
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from sqlalchemy import inspect  # noqa: E402

from app.tqms.db import create_db_engine  # noqa: E402

logger = logging.getLogger("tqms.release")

REQUIRED_TABLES = ("documents", "document_history", "procedure_extractions", "audit_events")


def _database_url() -> str:
    v = (os.environ.get("DATABASE_URL") or "").strip()
    if not v:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and v.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")
    return v


def alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def missing_tables(db_url: str) -> list[str]:
    engine = create_db_engine(db_url)
    try:
        present = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    return [t for t in REQUIRED_TABLES if t not in present]


def run_release(revision: str = "head") -> None:
    db_url = _database_url()
    logger.info("Release start: migrating to %s", revision)
    command.upgrade(alembic_config(db_url), revision)

    missing = missing_tables(db_url)
    if missing:
        raise RuntimeError(f"Schema incomplete after migration; missing tables: {', '.join(missing)}")
    logger.info("Release done: %d document control tables present", len(REQUIRED_TABLES))


def main() -> None:
    parser = argparse.ArgumentParser(description="Run database migrations for a release.")
    parser.add_argument("--revision", default="head", help="Alembic target revision")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")
    run_release(args.revision)


if __name__ == "__main__":
    main()
