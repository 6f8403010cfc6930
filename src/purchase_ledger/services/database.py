"""
Database connection and session management for Purchase Ledger.

This module provides:
- Database engine creation and configuration
- Session factory for database operations
- Database initialization (create tables)
- SQLite pragmas (foreign keys, WAL, busy timeout)
- SQLite transaction handling that supports SAVEPOINTs
- Store-level atomic increments
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, inspect, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None

# Milliseconds a writer waits for the SQLite lock before failing
SQLITE_BUSY_TIMEOUT_MS = 30000


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    This event listener is called for every new database connection.
    It enables foreign key constraints, WAL mode and the busy timeout.
    """
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return

    cursor = dbapi_connection.cursor()

    # Enable foreign key constraints (critical for referential integrity)
    cursor.execute("PRAGMA foreign_keys=ON")

    # Set WAL (Write-Ahead Logging) mode for better concurrency
    cursor.execute("PRAGMA journal_mode=WAL")

    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")

    cursor.close()


def _install_sqlite_transaction_handling(engine: Engine) -> None:
    """
    Let SQLAlchemy, not pysqlite, emit BEGIN.

    pysqlite's implicit transaction handling breaks SAVEPOINT. BEGIN IMMEDIATE
    takes the write lock up front so two purchase creations serialize instead
    of deadlocking on lock upgrade.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements (useful for debugging)

    Returns:
        Configured SQLAlchemy Engine
    """
    if database_url is None:
        config = get_config()
        config.ensure_directories()
        database_url = config.database_url

    logger.info(f"Creating database engine: {database_url}")

    if ":memory:" in database_url or "mode=memory" in database_url:
        # For in-memory databases (testing), use StaticPool
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    if engine.dialect.name == "sqlite":
        _install_sqlite_transaction_handling(engine)

    return engine


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables.

    Safe to call multiple times - existing tables won't be recreated.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing database tables")

    # Import all models to ensure they're registered with Base
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)

    logger.info("Database tables initialized successfully")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global database engine.

    Args:
        force_recreate: If True, recreate the engine even if one exists

    Returns:
        Database engine
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    Returns:
        New Session instance
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope for database operations.

    This context manager handles session lifecycle automatically:
    - Creates a new session
    - Commits on success
    - Rolls back on exception
    - Always closes the session

    Yields:
        Database session

    Example:
        with session_scope() as session:
            supplier = Supplier(name="Atacadao")
            session.add(supplier)
            # Commit happens automatically if no exception
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def atomic_increment(session: Session, model, row_id: int, column_name: str, delta):
    """
    Add delta to a numeric column with a single store-level UPDATE.

    The read-modify-write happens inside the database
    (SET col = col + :delta), so concurrent callers cannot lose updates.
    Any instance of the row already in the session is refreshed.

    Args:
        session: Active database session
        model: Mapped class (e.g., CreditCard)
        row_id: Primary key of the row
        column_name: Attribute to change (e.g., "available_limit")
        delta: Signed amount to add

    Returns:
        The column value after the update, or None if the row does not exist
    """
    column = getattr(model, column_name)
    result = session.execute(
        update(model)
        .where(model.id == row_id)
        .values({column_name: column + delta})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None

    instance = session.get(model, row_id, populate_existing=True)
    return getattr(instance, column_name)


def verify_database() -> bool:
    """
    Verify that the database is accessible and has tables.

    Returns:
        True if database is valid, False otherwise
    """
    try:
        inspector = inspect(get_engine())
        tables = inspector.get_table_names()
        return "purchases" in tables
    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        return False


def close_connections() -> None:
    """
    Close all database connections.

    Useful for cleanup or before application exit.
    """
    global _engine, _SessionFactory

    _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """
    Initialize the application database.

    Main entry point when a host application starts: creates the database
    and tables if they don't exist.
    """
    engine = get_engine()
    init_database(engine)

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")
