"""Domain-level exceptions.

Every error raised by the engine's public surface inherits from
NudgeEngineError, so callers can catch the whole family at once.
Enrichment errors live in ``nudge_engine.enrichment.exceptions`` and storage
errors in ``nudge_engine.persistence.exceptions``.
"""

from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError


class NudgeEngineError(Exception):
    """Base exception for all engine errors."""

    pass


class ValidationError(NudgeEngineError):
    """Input is missing or malformed.

    Raised before any side effect happens, so the caller can fix the input
    and retry without worrying about partial writes.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        """Initialize validation error.

        Args:
            message: Human-readable summary
            errors: Individual field problems, e.g. ``"member_id: required"``
        """
        self.errors = errors or []
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, error: PydanticValidationError, message: str) -> "ValidationError":
        """Flatten a pydantic error into ``field: problem`` lines."""
        errors = []
        for item in error.errors():
            field_path = ".".join(str(loc) for loc in item["loc"]) or "<root>"
            errors.append(f"{field_path}: {item['msg']}")
        return cls(message, errors=errors)


class NotFoundError(NudgeEngineError):
    """A job, profile or referral does not exist."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class UnauthorizedError(NudgeEngineError):
    """Caller is not authenticated. Passed through from the auth layer unchanged."""

    pass


class ForbiddenError(NudgeEngineError):
    """Caller is authenticated but not allowed. Passed through unchanged."""

    pass
