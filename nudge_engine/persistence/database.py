"""Database connection and session management.

One engine and session factory per process, created by init_database() at
startup and disposed by close_database() at shutdown.
"""

from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Callable, Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from nudge_engine.logging import get_logger

from .exceptions import DatabaseConnectionError, DataIntegrityError, PersistenceError

_engine: Engine | None = None
_session_factory: sessionmaker | None = None

# Factory for a transactional session scope, e.g. get_session
SessionScope = Callable[[], AbstractContextManager[Session]]

logger = get_logger(__name__, component="database")


def init_database(database_url: str) -> None:
    """Initialize the engine and create the schema if tables don't exist.

    Args:
        database_url: SQLAlchemy URL (e.g. "sqlite:///./data/nudge_engine.db")

    Raises:
        DatabaseConnectionError: If database initialization fails

    Example:
        >>> init_database("sqlite:///:memory:")
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise DatabaseConnectionError(f"Invalid database URL: {e}") from e

    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": url.render_as_string(hide_password=True)},
    )

    try:
        is_sqlite = url.get_backend_name() == "sqlite"
        in_memory = is_sqlite and url.database in (None, "", ":memory:")

        if is_sqlite and not in_memory:
            db_file = Path(url.database)
            if not db_file.parent.exists():
                logger.info(f"Creating database directory: {db_file.parent}")
                db_file.parent.mkdir(parents=True, exist_ok=True)

        _engine = create_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30} if is_sqlite else {},
        )

        if is_sqlite:
            _configure_sqlite(_engine, use_wal=not in_memory)

        _validate_connection(_engine)

        _session_factory = sessionmaker(
            bind=_engine,
            autoflush=True,
            expire_on_commit=False,
        )

        from .schema import create_schema

        create_schema(_engine)

        logger.info(
            "Database initialized successfully",
            extra={"event": "database.initialised"},
        )

    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True)
        raise DatabaseConnectionError(error_msg) from e


def _configure_sqlite(engine: Engine, use_wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if use_wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated successfully")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _commit(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError as e:
        raise DataIntegrityError(f"Failed to commit transaction: {e}") from e
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to commit transaction: {e}") from e


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a session that commits on success and rolls back on error.

    Yields:
        Session: SQLAlchemy session for database operations

    Raises:
        DatabaseConnectionError: If init_database() has not been called
        PersistenceError: If the commit fails (e.g. the database is locked)

    Example:
        >>> with get_session() as session:
        ...     job = JobRepository(session).get("job-1")
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        _commit(session)
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Database session rolled back due to exception: {e}",
            extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the engine.

    Raises:
        DatabaseConnectionError: If database not initialized
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the engine. Safe to call more than once."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed", extra={"event": "database.closed"})
