from __future__ import annotations

import logging
from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, g, has_request_context, request
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

# Engine execution option marking sessions that never write
READ_ONLY_OPTION = "tqms_read_only"

READ_ONLY_METHODS = ("GET", "HEAD", "OPTIONS")


def _serialize_sqlite_writes(engine: Engine) -> None:
    """
    SQLite ignores SELECT ... FOR UPDATE. Start write transactions with
    BEGIN IMMEDIATE instead, so two approve/retire calls on the same document
    cannot interleave between the read and the history write. Connections
    carrying the read-only execution option use a deferred BEGIN and do not
    queue behind writers.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-redef]
        # Hand transaction control to SQLAlchemy instead of pysqlite
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore[no-redef]
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(db_url: str) -> Engine:
    """Engine shared by the web app and the maintenance scripts."""
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if db_url.startswith("postgres"):
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    elif db_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"timeout": 15}

    engine = create_engine(db_url, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_writes(engine)
    return engine


def make_sessionmaker(engine: Engine, *, read_only: bool = False) -> sessionmaker[Session]:
    bind = engine.execution_options(**{READ_ONLY_OPTION: True}) if read_only else engine
    return sessionmaker(
        bind=bind,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(app: Flask) -> None:
    engine = create_db_engine(app.config["DATABASE_URL"])
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = make_sessionmaker(engine)
    app.extensions["sqlalchemy_readonly_sessionmaker"] = make_sessionmaker(engine, read_only=True)
    logger.info("Database engine ready (dialect=%s)", engine.dialect.name)


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers; handlers commit
    explicitly once a lifecycle operation has succeeded. GET/HEAD/OPTIONS
    requests get a read-only session.
    """
    if getattr(g, "db_session", None) is not None:
        return g.db_session
    if app is None:
        from flask import current_app

        app = current_app
    key = "sqlalchemy_sessionmaker"
    if has_request_context() and request.method in READ_ONLY_METHODS:
        key = "sqlalchemy_readonly_sessionmaker"
    sm = app.extensions[key]
    g.db_session = sm()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        return
    if _exc is not None:
        s.rollback()
    s.close()
    g.db_session = None


@contextmanager
def transaction(sm: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    One unit of work: commit on success, roll back on any error.

    Lifecycle operations (approve/retire) must run inside a single transaction
    so the row lock taken while reading is held until the history and status
    writes commit.
    """
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """Non-request helper for tests and batch jobs running inside the app."""
    with transaction(app.extensions["sqlalchemy_sessionmaker"]) as s:
        yield s
