"""Engine and session plumbing for the document store."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings

DATABASE_URL = f"sqlite:///{settings.database_path}"


def create_db_engine(url: str) -> Engine:
    """Build an engine; in-memory SQLite shares one connection across threads."""
    kwargs = {"future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def create_session_factory(bind: Engine) -> scoped_session:
    return scoped_session(
        sessionmaker(
            bind=bind,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )


engine = create_db_engine(DATABASE_URL)
SessionLocal = create_session_factory(engine)


@contextmanager
def get_session():
    """Yield a session that commits on success and rolls back on error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def session_scope(session_factory=None):
    """Like ``get_session`` but bound to ``session_factory`` when one is given."""
    if session_factory is None:
        with get_session() as session:
            yield session
        return
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
