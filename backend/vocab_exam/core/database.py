from contextlib import contextmanager
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from vocab_exam.core.config import settings

Base = declarative_base()

# Lazy engine initialization - create on first use to avoid import-time issues
_engine: Optional[Engine] = None
_session_local: Optional[sessionmaker] = None


def build_engine(db_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``db_url``.

    SQLite connections are shared across threads (FastAPI runs sync routes
    in a threadpool) and get foreign keys switched on so deletes cascade.
    In-memory SQLite uses a StaticPool so every session sees the same data.
    """
    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_url or db_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(db_url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(db_url, echo=echo, pool_pre_ping=True)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_local
    if _session_local is None:
        _session_local = sessionmaker(
            bind=get_engine(), autoflush=False, expire_on_commit=False
        )
    return _session_local


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables"""
    # Import models so they register on Base.metadata
    from vocab_exam.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """Session for work outside a request (background exam clock)"""
    session = (factory or get_session_factory())()
    try:
        yield session
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request"""
    with session_scope() as session:
        yield session
