"""
Database connection and setup
SQLAlchemy engine and session factory for the durable store
"""
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from matchday.models import Base

logger = logging.getLogger("db")

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the engine for ``database_url``.

    SQLite gets cross-thread access and enforced foreign keys (the event
    log cascades with its match). In-memory databases share one connection
    so every session sees the same data.
    """
    kwargs = {}
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # Needed for SQLite
        if database_url in IN_MEMORY_URLS:
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, connect_args=connect_args, echo=echo, **kwargs)

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory; objects stay readable after commit."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine):
    """
    Initialize database - create all tables
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {engine.url!r}")
