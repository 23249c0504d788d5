"""Base class for external inference (enrichment) clients.

The rest of the engine only depends on ``infer(prompt) -> InferenceResult``;
the provider's API surface stays behind this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class InferenceResult:
    """Text returned by an inference call plus what it cost."""

    text: str
    cost_usd: float = 0.0
    tokens: int = 0


class BaseEnrichmentClient(ABC):
    """Base class for all enrichment clients.

    Implementations must be safe to call from several coroutines at once and
    must raise UpstreamFailure (or UpstreamTimeout) for any failed call.
    """

    @abstractmethod
    async def infer(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
    ) -> InferenceResult:
        """Run one inference call.

        Args:
            prompt: User prompt
            system: Optional system instruction
            json_mode: Ask the provider for a JSON object response

        Returns:
            InferenceResult with the generated text, cost and token count

        Raises:
            UpstreamFailure: On HTTP, transport or response errors
            UpstreamTimeout: When the call exceeds the client timeout
        """
        pass

    def close(self) -> None:
        """Release network resources. No-op by default."""
        pass
