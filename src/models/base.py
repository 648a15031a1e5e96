"""
Base SQLAlchemy configuration and utilities for therapy progress models.
"""

import os
from typing import Generator

from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.types import TypeDecorator


class JSONType(TypeDecorator):
    """Cross-database JSON type that works with both PostgreSQL and SQLite.

    Uses JSONB on PostgreSQL for performance, falls back to JSON on SQLite.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def normalize_database_url(url: str) -> str:
    """Pin plain postgresql:// URLs to the psycopg2 driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return url


DATABASE_URL = normalize_database_url(
    os.getenv("DATABASE_URL", "sqlite:///./therapy_progress.db")
)


def get_engine(database_url: str | None = None):
    """Create SQLAlchemy engine.

    Args:
        database_url: Optional database URL override.

    Returns:
        SQLAlchemy engine instance.
    """
    url = normalize_database_url(database_url or DATABASE_URL)
    echo = os.getenv("SQL_ECHO", "false").lower() == "true"

    # SQLite-specific settings; timeout is the driver's lock wait in seconds
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )

    # PostgreSQL settings
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
    )


_engine = None
_SessionLocal = None


def get_session_factory(engine=None):
    """Get or create session factory."""
    global _engine, _SessionLocal

    if engine is not None:
        return sessionmaker(autocommit=False, autoflush=False, bind=engine)

    if _SessionLocal is None:
        _engine = get_engine()
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    return _SessionLocal


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions.

    Yields:
        SQLAlchemy session instance.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db(engine=None) -> None:
    """Create the therapy progress tables.

    Args:
        engine: Optional engine to use. Uses default if not provided.
    """
    if engine is None:
        engine = get_engine()

    Base.metadata.create_all(bind=engine)


def drop_db(engine=None) -> None:
    """Drop all database tables. USE WITH CAUTION.

    Args:
        engine: Optional engine to use. Uses default if not provided.
    """
    if engine is None:
        engine = get_engine()

    Base.metadata.drop_all(bind=engine)
