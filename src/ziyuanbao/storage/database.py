"""
Database Module - Engine and session factory.
============================================

One engine per settings instance. Sessions are opened per operation with
``with session_factory() as session`` and never shared between threads.
"""

from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.storage.models import Base

logger = get_logger(__name__)


def create_db_engine(url: Optional[str] = None, settings: Optional[Settings] = None) -> Engine:
    """
    Create a SQLAlchemy engine.

    Args:
        url: Database URL (effective settings URL if None)
        settings: Settings to read the URL and echo flag from

    Returns:
        Engine; SQLite connections enforce foreign keys
    """
    settings = settings or get_settings()
    url = url or settings.get_effective_database_url()

    kwargs: dict = {"echo": settings.database.echo}
    if url.startswith("sqlite"):
        # Background jobs use the engine from worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.debug(f"Database engine created: {engine.url.render_as_string(hide_password=True)}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory whose objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_database(engine: Engine) -> None:
    """Create all tables that don't exist yet."""
    logger.info("Initializing database schema")
    Base.metadata.create_all(engine)
