"""Database connection and session configuration.

This module sets up the SQLAlchemy engine and the SessionLocal factory based on DATABASE_URL.
It also provides a context manager for database sessions to ensure proper cleanup.
"""

import os
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

database_url = os.getenv("DATABASE_URL", "sqlite:///./rentcycle.db")


def build_session_factory(url: str) -> sessionmaker:
    """Create an engine for ``url`` and a session factory bound to it.

    Stores hand detached rows back to callers after commit, so sessions do
    not expire their objects on commit.

    Args:
        url (str): SQLAlchemy database URL.

    Returns:
        sessionmaker: Session factory bound to a new engine.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    bind = create_engine(url, connect_args=connect_args)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


SessionLocal = build_session_factory(database_url)


@contextmanager
def get_db_session(session_factory=None):
    """Context manager for database sessions.

    Commits when the block exits cleanly, rolls back and re-raises otherwise,
    and always closes the session. One ``with`` block is one unit of work.

    Args:
        session_factory (sessionmaker, optional): Factory to open the session
            from; defaults to SessionLocal.

    Yields:
        Session: SQLAlchemy Session object.
    """
    session: Session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
