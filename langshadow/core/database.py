"""
Database engine setup
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from langshadow.core.config import settings


def create_db_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections hand transaction control to SQLAlchemy so that
    SAVEPOINTs (one per replicated insert) behave like on other engines.
    """
    if url.startswith("sqlite"):
        db_engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            **kwargs
        )

        @event.listens_for(db_engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(db_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return db_engine

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,  # Recycle connections after 1 hour
        **kwargs
    )


engine = create_db_engine(settings.DATABASE_URL)


def get_engine() -> Engine:
    """Dependency returning the shared engine (overridable in tests)."""
    return engine
