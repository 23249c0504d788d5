"""Persistence layer exceptions.

Repositories translate SQLAlchemy errors into these so callers never need to
import SQLAlchemy to handle storage failures. A failed interaction append is
the one storage error callers are expected to retry.
"""

from nudge_engine.domain.exceptions import NudgeEngineError


class PersistenceError(NudgeEngineError):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be initialized or reached.

    Examples:
    - Invalid database URL
    - Database file or directory not writable
    - init_database() was never called
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on a constraint violation (duplicate primary key, bad foreign key)."""

    pass
