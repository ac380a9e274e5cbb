"""
SQLAlchemy engine and session management.

Both the host configuration table and the convert rule table live in
the same database; sessions are short-lived, one per operation.
"""

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional

import structlog
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import DatabaseSettings, get_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


def create_db_engine(settings: DatabaseSettings) -> Engine:
    """Create an engine for the configured database URL."""
    url = settings.url
    if url.strip().lower().startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases only exist for one connection
        if ":memory:" in url or url.strip().rstrip("/").lower() == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=settings.echo, **kwargs)

    return create_engine(url, echo=settings.echo, pool_pre_ping=True, pool_recycle=3600)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@lru_cache()
def get_engine() -> Engine:
    """Get the process-wide engine built from settings."""
    settings = get_settings()
    engine = create_db_engine(settings.database)
    logger.info("Database engine created", backend=engine.dialect.name)
    return engine


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    return create_session_factory(get_engine())


def init_database(engine: Optional[Engine] = None) -> None:
    """Create the configuration and convert rule tables if they are missing."""
    # Models register themselves on Base.metadata when imported
    from ..models import convert_message  # noqa: F401
    from . import configuration  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured", tables=sorted(Base.metadata.tables))


@contextmanager
def get_db(session_factory: Optional[sessionmaker[Session]] = None) -> Iterator[Session]:
    """Context manager for getting a database session."""
    db = (session_factory or get_session_factory())()
    try:
        yield db
    finally:
        db.close()
