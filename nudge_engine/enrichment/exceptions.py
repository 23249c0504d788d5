"""Custom exceptions for enrichment (paid inference) calls.

None of these are fatal for nudge listing: the generator degrades to static
templates. They surface as errors only for operations whose whole purpose is
enrichment, such as an explicit job summary request.
"""

from typing import Optional

from nudge_engine.domain.exceptions import NudgeEngineError


class EnrichmentError(NudgeEngineError):
    """Base exception for all enrichment errors.

    Catching this exception covers both budget refusals and upstream failures,
    which callers treat the same way: enrichment is unavailable right now.
    """

    pass


class BudgetExceeded(EnrichmentError):
    """The daily spend or hourly call ceiling has been reached.

    Raised by the budget-bounded cache before any producer call is made.
    """

    def __init__(self, message: str, reason: str, limit: float, current: float) -> None:
        """Initialize budget error.

        Args:
            message: Human-readable error message
            reason: Which ceiling was hit ("daily_spend" or "hourly_calls")
            limit: The configured ceiling
            current: The counter value that reached it
        """
        super().__init__(message)
        self.reason = reason
        self.limit = limit
        self.current = current


class UpstreamFailure(EnrichmentError):
    """The external inference call failed.

    Covers HTTP errors, malformed responses and any unexpected exception
    raised by a producer.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        """Initialize upstream failure.

        Args:
            message: Human-readable error message
            status_code: HTTP status code when the failure came from a response
        """
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeout(UpstreamFailure):
    """The external inference call did not finish within the configured timeout."""

    pass
