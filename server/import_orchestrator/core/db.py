"""Database session/engine helpers."""
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings
from .exceptions import TransientDBError, WriteConflictError, first_line


def utcnow() -> datetime:
    """Naive UTC timestamp; all date columns are stored without a zone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_db_engine(database_url: str, *, timeout_seconds: float = 30.0) -> Engine:
    """Create an engine whose connections enforce the per-call deadline.

    PostgreSQL gets a ``statement_timeout``. SQLite (development and tests) uses
    the busy timeout as deadline and opens every transaction with
    ``BEGIN IMMEDIATE`` so concurrent claimers serialise instead of failing on
    lock upgrades; this also makes SAVEPOINT behave.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
        )

        @event.listens_for(engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    connect_args = {}
    if database_url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={int(timeout_seconds * 1000)}"

    return create_engine(
        database_url,
        future=True,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_db_engine(settings.database_url, timeout_seconds=settings.repository_timeout_seconds)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    return create_session_factory(get_engine())


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a database session."""

    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Provide a transactional scope for background work and scripts."""

    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as the orchestrator's transport error kinds."""
    try:
        yield
    except IntegrityError as exc:
        raise WriteConflictError(f"{operation} failed: {first_line(str(exc.orig))}") from exc
    except DBAPIError as exc:
        raise TransientDBError(f"{operation} failed: {first_line(str(exc.orig))}") from exc
