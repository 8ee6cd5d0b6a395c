"""
Dashgate - Database Configuration

SQLModel engine setup for the durable record store.
Supports PostgreSQL (production) and SQLite (development).

Usage:
    from dashgate.auth.database import build_record_store

    store = build_record_store(settings.DATABASE_URL)
"""

from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool

from dashgate.auth.store import MemoryRecordStore, RecordStore, SQLRecordStore


def get_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create SQLAlchemy engine with appropriate configuration.

    Args:
        database_url: Connection string
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    if database_url.startswith("sqlite"):
        # SQLite configuration
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # PostgreSQL configuration with connection pooling
    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def init_db(engine: Engine) -> None:
    """
    Initialize database tables.

    Safe to call multiple times (uses CREATE IF NOT EXISTS).
    """
    # Import models to register them with SQLModel
    from dashgate.auth.models import StoredRecord  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session_factory(engine: Engine):
    """
    Create a session factory bound to engine.

    Returns:
        Callable that creates new database sessions
    """
    def session_factory() -> Session:
        return Session(engine)

    return session_factory


def build_record_store(database_url: str) -> tuple[RecordStore, Optional[Engine]]:
    """
    Pick the record store for a DATABASE_URL.

    Returns:
        Tuple of (store, engine); engine is None for the in-memory store
    """
    if not database_url:
        return MemoryRecordStore(), None

    engine = get_engine(database_url)
    init_db(engine)
    return SQLRecordStore(get_session_factory(engine)), engine
