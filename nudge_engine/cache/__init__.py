"""Budget-bounded, coalescing cache for paid enrichment calls."""

from .budget import BudgetTracker
from .models import BudgetState, CacheEntry, CacheStats, CacheStatus, ProducerResult
from .service import BudgetBoundedCache

__all__ = [
    "BudgetBoundedCache",
    "BudgetTracker",
    "BudgetState",
    "CacheEntry",
    "CacheStats",
    "CacheStatus",
    "ProducerResult",
]
