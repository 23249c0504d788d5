"""Paid inference (enrichment) clients and their exceptions.

Producers that route enrichment through the budget-bounded cache live in
``nudge_engine.enrichment.producers``; import them from there.
"""

from .base import BaseEnrichmentClient, InferenceResult
from .exceptions import BudgetExceeded, EnrichmentError, UpstreamFailure, UpstreamTimeout
from .factory import get_enrichment_client
from .http_client import HTTPEnrichmentClient

__all__ = [
    "BaseEnrichmentClient",
    "InferenceResult",
    "HTTPEnrichmentClient",
    "get_enrichment_client",
    "EnrichmentError",
    "BudgetExceeded",
    "UpstreamFailure",
    "UpstreamTimeout",
]
