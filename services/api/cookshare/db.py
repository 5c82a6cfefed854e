"""Engine and session plumbing.

The engine is built lazily from settings so tests can bind their own URL
first with init_engine().
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from .settings import settings


class Base(DeclarativeBase):
    pass


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _sqlite_foreign_keys(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: str | None = None) -> Engine:
    global _engine, _session_factory
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.endswith("://"):
            # Every session must see the same in-memory database
            kwargs["poolclass"] = StaticPool
        _engine = create_engine(url, **kwargs)
        # ondelete=CASCADE on recipe children needs enforced foreign keys
        event.listen(_engine, "connect", _sqlite_foreign_keys)
    else:
        _engine = create_engine(url, pool_pre_ping=True)

    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def session_factory() -> sessionmaker:
    if _session_factory is None:
        init_engine()
    return _session_factory


def get_db():
    db = session_factory()()
    try:
        yield db
    finally:
        db.close()
