"""
Create all tables directly from the SQLAlchemy models (local dev / SQLite).

Production databases are managed with Alembic (scripts/release.py).

Usage:
  python scripts/init_db.py
  python scripts/init_db.py --database-url sqlite:///other.db
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tqms.db import create_db_engine  # noqa: E402
from app.tqms.models import Base  # noqa: E402
from scripts._db_utils import resolve_database_url  # noqa: E402


def create_tables(*, database_url: str | None = None) -> list[str]:
    engine = create_db_engine(resolve_database_url(database_url))
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()
    return sorted(Base.metadata.tables.keys())


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the document control tables.")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    args = parser.parse_args()

    load_dotenv()
    tables = create_tables(database_url=args.database_url)
    print(f"Initialized database tables: {', '.join(tables)}")


if __name__ == "__main__":
    main()
