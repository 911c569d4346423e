"""Database setup and session management."""

import logging
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _configure_sqlite(engine) -> None:
    """Make pysqlite honour foreign keys and SAVEPOINTs.

    pysqlite defers ``BEGIN`` until the first DML statement, which breaks
    ``Session.begin_nested()``.  Taking over transaction control (the recipe
    from the SQLAlchemy SQLite dialect docs) lets the per-row savepoints in
    the reconciliation service behave the same as on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str, **kwargs):
    """Create an engine for ``database_url`` with SQLite tweaks applied."""
    connect_args = kwargs.pop("connect_args", {})
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args.setdefault("check_same_thread", False)

    engine = create_engine(database_url, connect_args=connect_args, echo=False, **kwargs)
    if is_sqlite:
        _configure_sqlite(engine)
    return engine


@lru_cache
def get_engine():
    """Get or create the database engine (cached)."""
    engine = create_db_engine(settings.DATABASE_URL)
    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def get_session_local():
    """Get a sessionmaker bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db():
    """Dependency that provides a database session.

    Transaction conventions:
    - Default: services ``flush()``, API layer ``commit()``
    - Exceptions that commit internally:
      - ``SyncService.sync_workspace()``: commits once per institution so a
        later failure or request timeout never discards earlier institutions
      - ``ReconciliationService.upsert_transaction()``: SAVEPOINT per row so a
        uniqueness race turns into an update instead of a failed batch
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
