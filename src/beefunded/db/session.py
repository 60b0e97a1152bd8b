"""Engine, session factory and session helpers.

Sessions are opened from FastAPI's threadpool for request handlers and from
``asyncio.to_thread`` workers during reconciliation, so a session is never
tied to the thread that created the engine.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from beefunded.core.settings import settings

# Anything that hands out a session for one unit of work, e.g. one chain event.
SessionFactory = Callable[[], AbstractContextManager[Session]]


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import beefunded.models  # noqa: E402,F401


def engine_options(url: str) -> dict[str, Any]:
    """Return ``create_engine`` keyword arguments suited to ``url``.

    SQLite connections are shared across worker threads, and an in-memory
    database must stay on a single connection to be visible at all.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if parsed.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(
    settings.effective_database_url,
    echo=settings.sql_debug,
    **engine_options(settings.effective_database_url),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    # Reconciled rows are read after commit to build notifications.
    expire_on_commit=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: Callable[[], Session] = SessionLocal) -> Iterator[Session]:
    """Open a session for one unit of work, rolling back whatever it left uncommitted."""
    db = factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def create_tables() -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=engine)
