"""
Database configuration and session management.

This module provides the SQLAlchemy declarative base, the `DataStore` handle
that owns the engine and session factory, and the FastAPI `get_db`
dependency.

Nothing connects at import time. The application lifespan calls
`init_data_store()` on startup, keeps the handle on `app.state.data_store`
and calls `DataStore.close()` on shutdown. Services never reach for a global
connection: they are handed a `Session` in their constructor.

Configuration:
- DATABASE_URL: connection string (see `rcm/config/database_url.py`)
- DATABASE_POOL_SIZE: connection pool size (default: 10)
- DATABASE_MAX_OVERFLOW: maximum pool overflow (default: 20)
- SQLite URLs skip pool sizing and allow cross-thread use (tests)
"""
import os
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, Column, DateTime, Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from rcm.config.database_url import get_database_url, is_sqlite_url
from rcm.utils.clock import utcnow
from rcm.utils.logger import get_logger

logger = get_logger(__name__)

# Base class for models (must be created before models are imported)
Base = declarative_base()


class TimestampMixin:
    """Adds created_at / updated_at columns (naive UTC)."""

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: Optional[int] = None,
    max_overflow: Optional[int] = None,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> Engine:
    """
    Create SQLAlchemy database engine with connection pooling.

    Args:
        database_url: Database connection URL (defaults to DATABASE_URL from environment)
        pool_size: Connection pool size (defaults to DATABASE_POOL_SIZE env var or 10)
        max_overflow: Maximum pool overflow (defaults to DATABASE_MAX_OVERFLOW env var or 20)
        pool_pre_ping: Enable connection health checks (default: True)
        echo: Enable SQL query logging (default: False)

    Returns:
        Configured SQLAlchemy Engine instance
    """
    url = database_url or get_database_url()

    if is_sqlite_url(url):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    pool_size = pool_size or int(os.getenv("DATABASE_POOL_SIZE", "10"))
    max_overflow = max_overflow or int(os.getenv("DATABASE_MAX_OVERFLOW", "20"))

    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        echo=echo,
    )


def create_session_factory(
    engine: Engine,
    autoflush: bool = False,
    expire_on_commit: bool = False,
) -> sessionmaker:
    """
    Create SQLAlchemy session factory bound to `engine`.

    `expire_on_commit` defaults to False: the posting engine commits once per
    remittance line and keeps working with the batch it loaded.
    """
    return sessionmaker(
        autoflush=autoflush,
        expire_on_commit=expire_on_commit,
        bind=engine,
    )


class DataStore:
    """
    Shared handle over the relational store.

    Created once per process, shared read-only by request handlers, closed on
    shutdown. Each unit of work gets its own `Session` from `session()`.
    """

    def __init__(self, engine: Engine, session_factory: Optional[sessionmaker] = None):
        self.engine = engine
        self.session_factory = session_factory or create_session_factory(engine)
        self._closed = False

    @classmethod
    def from_url(cls, database_url: Optional[str] = None, echo: bool = False) -> "DataStore":
        return cls(create_database_engine(database_url, echo=echo))

    def session(self) -> Session:
        if self._closed:
            raise RuntimeError("DataStore is closed")
        return self.session_factory()

    def create_all(self) -> None:
        """Create every mapped table that does not exist yet."""
        get_all_models()
        Base.metadata.create_all(bind=self.engine)

    def close(self) -> None:
        """Dispose the connection pool. Safe to call twice."""
        if self._closed:
            return
        self.engine.dispose()
        self._closed = True
        logger.info("Data store closed")

    @property
    def closed(self) -> bool:
        return self._closed


def get_all_models():
    """Import every model so it is registered on Base.metadata."""
    from rcm.models.database import (  # noqa: F401
        Claim,
        RemittanceBatch,
        RemittanceLineItem,
        PaymentPosting,
    )

    return [Claim, RemittanceBatch, RemittanceLineItem, PaymentPosting]


def init_data_store(database_url: Optional[str] = None, create_tables: bool = True) -> DataStore:
    """
    Initialize the data store on process start.

    Args:
        database_url: Optional override of DATABASE_URL
        create_tables: Create missing tables (development/test convenience;
            production schemas are managed by Alembic)

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If the store cannot be reached while
            creating tables
    """
    data_store = DataStore.from_url(database_url)
    if create_tables:
        try:
            data_store.create_all()
        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            data_store.close()
            raise
    logger.info("Data store initialized", dialect=data_store.engine.dialect.name)
    return data_store


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Request-scoped database session for FastAPI route handlers.

    Yields:
        Session from the application's DataStore; closed after the request.
    """
    data_store: DataStore = request.app.state.data_store
    db = data_store.session()
    try:
        yield db
    finally:
        db.close()
