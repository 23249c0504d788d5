"""Persistence layer backed by SQLAlchemy (SQLite by default).

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - JobRepository: job provider (get_job raises NotFoundError)
    - MemberProfileRepository: member profile provider
    - InteractionRepository: append-only nudge interactions
    - EventRepository: append-only lifecycle events

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from nudge_engine.persistence import init_database, get_session, JobRepository
    >>> init_database("sqlite:///./data/nudge_engine.db")
    >>> with get_session() as session:
    ...     job = JobRepository(session).get_job("job-1")
"""

from .database import SessionScope, close_database, get_engine, get_session, init_database
from .exceptions import DatabaseConnectionError, DataIntegrityError, PersistenceError
from .repositories import (
    EventRepository,
    InteractionRepository,
    JobRepository,
    MemberProfileRepository,
)

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "SessionScope",
    "JobRepository",
    "MemberProfileRepository",
    "InteractionRepository",
    "EventRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "DataIntegrityError",
]
