"""Context propagation for structured logging.

Fields pushed here are injected into every log record emitted inside the
scope. Context lives in a ContextVar, so each asyncio task sees the context
that was active when it was created and concurrent requests never leak
member/job identifiers into each other's logs.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional


LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Get a copy of the current logging context."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge fields into the logging context.

    Fields whose value is None are skipped so optional identifiers
    (e.g. a missing nudge_id) do not show up as ``null`` on every line.

    Args:
        **kwargs: Key-value pairs to add to the logging context

    Returns:
        Token that can be used to restore previous context state

    Example:
        >>> token = push_log_context(member_id="m-1", job_id="j-9")
        >>> # ... all logs include member_id and job_id ...
        >>> pop_log_context(token)
    """
    current = LogContextVar.get()
    additions = {key: value for key, value in kwargs.items() if value is not None}
    return LogContextVar.set({**current, **additions})


def pop_log_context(token: Token) -> None:
    """Restore the logging context to the state captured by ``token``."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Clear all logging context fields (mainly for tests)."""
    LogContextVar.set({})


class log_context:
    """Context manager for scoped logging context.

    Example:
        >>> with log_context(member_id="m-1", job_id="j-9"):
        ...     logger.info("Generating nudges")
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
