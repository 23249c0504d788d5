"""Data models for the budget-bounded cache."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict


@dataclass(frozen=True)
class ProducerResult:
    """What a producer returns: the value plus what it cost to produce."""

    value: Any
    cost_usd: float = 0.0
    tokens: int = 0


@dataclass(frozen=True)
class CacheEntry:
    """A memoized producer result. Owned exclusively by the cache."""

    key: str
    namespace: str
    value: Any
    cost_usd: float
    tokens: int
    created_at: datetime
    ttl_seconds: int

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class BudgetState:
    """Spend and call counters for the current UTC day and hour windows.

    Attributes:
        daily_spend_usd: Spend charged since ``day_window_start``
        daily_tokens: Tokens charged since ``day_window_start``
        call_count_this_hour: Successful producer calls since ``hour_window_start``
        day_window_start: Start of the UTC day the daily counters belong to
        hour_window_start: Start of the UTC hour the call counter belongs to
    """

    day_window_start: datetime
    hour_window_start: datetime
    daily_spend_usd: float = 0.0
    daily_tokens: int = 0
    call_count_this_hour: int = 0


@dataclass
class CacheStats:
    """Lookup counters since the cache was created."""

    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    failures: int = 0
    budget_rejections: int = 0


@dataclass(frozen=True)
class CacheStatus:
    """Point-in-time view of budget and cache health."""

    within_budget: bool
    daily_spend_usd: float
    daily_limit_usd: float
    remaining_budget_usd: float
    daily_tokens: int
    calls_this_hour: int
    hourly_call_limit: int
    hourly_calls_remaining: int
    in_flight: int
    entries: int
    stats: CacheStats = field(default_factory=CacheStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "within_budget": self.within_budget,
            "daily_spend_usd": round(self.daily_spend_usd, 6),
            "daily_limit_usd": self.daily_limit_usd,
            "remaining_budget_usd": round(self.remaining_budget_usd, 6),
            "daily_tokens": self.daily_tokens,
            "calls_this_hour": self.calls_this_hour,
            "hourly_call_limit": self.hourly_call_limit,
            "hourly_calls_remaining": self.hourly_calls_remaining,
            "in_flight": self.in_flight,
            "entries": self.entries,
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "coalesced": self.stats.coalesced,
            "failures": self.stats.failures,
            "budget_rejections": self.stats.budget_rejections,
        }
