"""Database connection and session management.

This module provides database connection management, session factories,
and the retrying unit-of-work helper used by the API and the background jobs.
"""

import logging
import time
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from sqlalchemy import create_engine, event, func, inspect, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from clanwars.config import get_settings
from clanwars.models import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _configure_sqlite_connection(
    dbapi_connection: Any, connection_record: Any  # noqa: ARG001
) -> None:
    """Enable WAL, foreign keys and a busy timeout, and take over transaction control.

    Args:
        dbapi_connection: The DBAPI connection
        connection_record: Connection record (required by SQLAlchemy event API)

    Note:
        Disabling pysqlite's implicit BEGIN lets ``_begin_immediate`` open every
        transaction with a write lock, so concurrent attacks and settlement
        passes serialize instead of reading stale rows.
    """
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def _begin_immediate(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def configure_sqlite_engine(engine: Engine) -> Engine:
    """Attach the SQLite connection and transaction hooks to ``engine``."""
    event.listen(engine, "connect", _configure_sqlite_connection)
    event.listen(engine, "begin", _begin_immediate)
    return engine


def create_db_engine(url: str | None = None) -> Engine:
    """Create and configure the database engine.

    Args:
        url: Database URL; defaults to ``DATABASE_URL`` from settings

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    settings = get_settings()
    url = url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        # SQLite engine: simpler pooling, enable SQLite pragmas on connect
        engine = create_engine(
            url,
            echo=settings.DATABASE_ECHO,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )
        configure_sqlite_engine(engine)
    else:
        # Non-SQLite (e.g., PostgreSQL): honor pool settings for production use
        engine = create_engine(
            url,
            echo=settings.DATABASE_ECHO,
            pool_pre_ping=True,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        )

    return engine


# Global engine and session factory
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """Get or create the global database engine."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory with the engine's conventions (explicit flushes, no expiry on commit)."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def get_session_factory() -> sessionmaker[Session]:
    """Get or create the global session factory."""
    global _SessionLocal  # noqa: PLW0603
    if _SessionLocal is None:
        _SessionLocal = build_session_factory(get_engine())
    return _SessionLocal


def get_db() -> Iterator[Session]:
    """FastAPI dependency for getting database sessions.

    Yields:
        Database session, closed after the request completes
    """
    SessionLocal = get_session_factory()  # noqa: N806
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine or get_engine())


def run_in_transaction(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    *,
    attempts: int = 3,
    backoff_seconds: float = 0.05,
) -> T:
    """Run ``work`` in a fresh session and commit it, retrying lock failures.

    Only ``OperationalError`` (lock timeouts, serialization failures, deadlocks)
    is retried; domain errors and everything else propagate after rollback.

    Args:
        session_factory: Callable returning a new Session
        work: Unit of work; may commit itself
        attempts: Total attempts before the last error is re-raised
        backoff_seconds: Linear backoff between attempts

    Returns:
        Whatever ``work`` returned
    """
    for attempt in range(1, attempts + 1):
        session = session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except OperationalError as exc:
            session.rollback()
            if attempt >= attempts:
                raise
            logger.warning(
                "transaction attempt %d/%d failed (%s); retrying", attempt, attempts, exc.orig
            )
            time.sleep(backoff_seconds * attempt)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
    raise RuntimeError("run_in_transaction requires at least one attempt")


def check_database_health(engine: Engine | None = None) -> bool:
    """Check if the database is accessible.

    Returns:
        bool: True if database is healthy, False otherwise
    """
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("database health check failed")
        return False


def get_table_names(engine: Engine | None = None) -> list[str]:
    """Get list of all table names in the database."""
    inspector = inspect(engine or get_engine())
    return inspector.get_table_names()


def count_rows(session: Session, table_name: str) -> int:
    """Count rows in a specific table.

    Args:
        session: Database session
        table_name: Name of the table to count. Must be a valid table in the schema.

    Returns:
        int: Number of rows in the table

    Raises:
        ValueError: If table_name is not a valid table in the schema
    """
    if table_name not in Base.metadata.tables:
        valid_tables = sorted(Base.metadata.tables.keys())
        raise ValueError(
            f"Invalid table name: {table_name}. Valid tables: {', '.join(valid_tables)}"
        )

    table = Base.metadata.tables[table_name]
    result = session.execute(select(func.count()).select_from(table)).scalar()
    return result or 0
