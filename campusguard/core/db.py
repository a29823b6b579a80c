"""
Database session management for the CampusGuard reference stores.

Uses SQLAlchemy 2.x style `Session` and declarative models. Provides a
session factory plus a context manager for synchronous code. Tests and
embedding applications may pass their own session factory to the stores
instead of using the module-level one.
"""

from __future__ import annotations

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import settings


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _engine_kwargs(url: str) -> dict:
    # SQLite pools do not accept sizing arguments
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 10),
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SEC", 1800),
        "pool_timeout": _env_int("DB_POOL_TIMEOUT_SEC", 30),
    }


# Create SQLAlchemy engine
engine = create_engine(
    settings.database_url,
    echo=False,
    future=True,
    pool_pre_ping=True,
    **_engine_kwargs(settings.database_url),
)

# Create a configured session factory
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def init_db(bind=None) -> None:
    """Create all tables on the given engine (defaults to the module engine)."""
    from ..models import Base

    Base.metadata.create_all(bind or engine)


class SessionContext:
    """Context manager for database sessions outside of a request cycle."""

    def __init__(self, factory=None) -> None:
        self._factory = factory or SessionLocal

    def __enter__(self):
        self.db = self._factory()
        return self.db

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.db.close()
