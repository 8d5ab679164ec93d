"""
Database configuration and session management.
SQLAlchemy 2.0 engine, session factory and FastAPI dependency.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tabledesk_shared.config.settings import settings


def _calculate_pool_size() -> int:
    """(2 * CPU cores) + 1, capped at 20."""
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, 20)


def build_engine(url: str | None = None) -> Engine:
    """
    Create an engine for the given URL (defaults to DATABASE_URL).

    Pool sizing and connect timeouts only apply to server databases;
    SQLite keeps SQLAlchemy's defaults.
    """
    url = url or settings.database_url
    kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": False}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(
            pool_size=_calculate_pool_size(),
            max_overflow=15,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            connect_args={"connect_timeout": 10},
        )

    return create_engine(url, **kwargs)


# Connections are opened lazily, so importing this module never touches the database
engine = build_engine()

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @router.get("/orders")
        def list_orders(db: Session = Depends(get_db)):
            ...

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI (CLI, scripts).

    Usage:
        with get_db_context() as db:
            SweepService(db, clock, notifier).run()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
