"""Budget-bounded, coalescing memoization in front of paid producers.

Every enrichment call in the engine goes through BudgetBoundedCache.cached_call:

1. A live entry for (namespace, key) is returned without touching the budget.
2. On a miss, the budget is consulted and BudgetExceeded raised if a ceiling
   has been reached.
3. Concurrent misses for the same key share one in-flight producer task.
4. A successful result is stored and charged; a failure is neither cached nor
   charged and reaches every waiter.

Entries, the in-flight registry and the budget tracker are only mutated while
holding the cache's single asyncio.Lock. Expired entries are swept during
lookups at most once per ``cache.sweep_interval``.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from nudge_engine.config.models import CacheConfig
from nudge_engine.enrichment.exceptions import (
    BudgetExceeded,
    EnrichmentError,
    UpstreamFailure,
    UpstreamTimeout,
)
from nudge_engine.logging import get_logger
from nudge_engine.utils.hashing import compute_cache_key
from nudge_engine.utils.timestamps import Clock

from .budget import BudgetTracker
from .models import CacheEntry, CacheStats, CacheStatus, ProducerResult

logger = get_logger(__name__, component="cache")

Producer = Callable[[], Awaitable[ProducerResult]]

DEFAULT_TIMEOUT_SECONDS = 10.0


class BudgetBoundedCache:
    """Content-addressed cache with coalescing and a spend ceiling.

    Construct one per process (or per test) and pass it to every component
    that needs enrichment.
    """

    def __init__(
        self,
        budget: BudgetTracker,
        config: Optional[CacheConfig] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Clock] = None,
    ):
        """Initialize an empty cache.

        Args:
            budget: Tracker owning the spend and call counters
            config: Per-namespace TTLs
            timeout_seconds: Upper bound for a single producer call
            clock: Returns the current UTC time; defaults to the budget's clock
        """
        self.budget = budget
        self.config = config or CacheConfig()
        self.timeout_seconds = timeout_seconds
        self.clock = clock or budget.clock
        self.stats = CacheStats()

        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, "asyncio.Task[Any]"] = {}
        self._lock = asyncio.Lock()
        self._next_sweep = self.clock() + timedelta(seconds=self.config.sweep_interval_seconds)

    async def cached_call(
        self,
        namespace: str,
        key: Any,
        producer: Producer,
        ttl_seconds: Optional[int] = None,
    ) -> Any:
        """Return the memoized value for (namespace, key), producing it if needed.

        Args:
            namespace: Cache namespace ("nudge", "message", "summary", ...)
            key: Structural, JSON-compatible key; sets are order-insensitive
            producer: Zero-argument coroutine function returning a ProducerResult
            ttl_seconds: Override for the namespace TTL

        Returns:
            The cached or freshly produced value

        Raises:
            BudgetExceeded: Miss while a budget ceiling is reached
            UpstreamTimeout: Producer did not finish within the timeout
            UpstreamFailure: Producer failed for any other reason
        """
        cache_key = compute_cache_key(namespace, key)
        ttl = ttl_seconds if ttl_seconds is not None else self.config.ttl_seconds(namespace)

        async with self._lock:
            self._sweep_if_due()
            entry = self._live_entry(cache_key)
            if entry is not None:
                self.stats.hits += 1
                logger.debug(
                    "Cache hit",
                    extra={"event": "cache.hit", "namespace": namespace, "cache_key": cache_key[:12]},
                )
                return entry.value

            task = self._in_flight.get(cache_key)
            if task is not None:
                self.stats.coalesced += 1
                logger.debug(
                    "Joining in-flight producer call",
                    extra={"event": "cache.coalesced", "namespace": namespace, "cache_key": cache_key[:12]},
                )
            else:
                try:
                    self.budget.check(in_flight=len(self._in_flight))
                except BudgetExceeded as e:
                    self.stats.budget_rejections += 1
                    logger.warning(
                        "Enrichment budget exceeded",
                        extra={
                            "event": "budget.exceeded",
                            "namespace": namespace,
                            "reason": e.reason,
                            "limit": e.limit,
                            "current": e.current,
                        },
                    )
                    raise

                self.stats.misses += 1
                task = asyncio.create_task(self._produce(cache_key, namespace, producer, ttl))
                task.add_done_callback(_retrieve_exception)
                self._in_flight[cache_key] = task
                logger.debug(
                    "Cache miss, calling producer",
                    extra={"event": "cache.miss", "namespace": namespace, "cache_key": cache_key[:12]},
                )

        # Cancelling this waiter must not cancel the shared task
        return await asyncio.shield(task)

    async def _produce(self, cache_key: str, namespace: str, producer: Producer, ttl: int) -> Any:
        try:
            result = await self._invoke(namespace, producer)
        except asyncio.CancelledError:
            self._in_flight.pop(cache_key, None)
            raise
        except Exception:
            async with self._lock:
                self._in_flight.pop(cache_key, None)
                self.stats.failures += 1
            raise

        async with self._lock:
            self._in_flight.pop(cache_key, None)
            self._entries[cache_key] = CacheEntry(
                key=cache_key,
                namespace=namespace,
                value=result.value,
                cost_usd=result.cost_usd,
                tokens=result.tokens,
                created_at=self.clock(),
                ttl_seconds=ttl,
            )
            self.budget.charge(result.cost_usd, result.tokens)

        logger.info(
            "Producer result cached",
            extra={
                "event": "cache.stored",
                "namespace": namespace,
                "cache_key": cache_key[:12],
                "cost_usd": round(result.cost_usd, 6),
                "tokens": result.tokens,
                "ttl_seconds": ttl,
            },
        )
        return result.value

    async def _invoke(self, namespace: str, producer: Producer) -> ProducerResult:
        try:
            result = await asyncio.wait_for(producer(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(
                "Producer timed out",
                extra={"event": "cache.producer_timeout", "namespace": namespace, "timeout_seconds": self.timeout_seconds},
            )
            raise UpstreamTimeout(
                f"Enrichment call for '{namespace}' timed out after {self.timeout_seconds}s"
            ) from e
        except EnrichmentError as e:
            logger.warning(
                "Producer failed",
                extra={"event": "cache.producer_failed", "namespace": namespace, "error": str(e)},
            )
            raise
        except Exception as e:
            logger.warning(
                "Producer raised unexpected error",
                extra={"event": "cache.producer_failed", "namespace": namespace, "error": str(e)},
                exc_info=True,
            )
            raise UpstreamFailure(f"Enrichment call for '{namespace}' failed: {e}") from e

        if not isinstance(result, ProducerResult):
            raise UpstreamFailure(
                f"Producer for '{namespace}' returned {type(result).__name__}, expected ProducerResult"
            )
        return result

    def _live_entry(self, cache_key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(cache_key)
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            del self._entries[cache_key]
            logger.debug(
                "Evicted expired entry",
                extra={"event": "cache.expired", "namespace": entry.namespace, "cache_key": cache_key[:12]},
            )
            return None
        return entry

    async def invalidate(self, namespace: str, key: Any) -> bool:
        """Drop one entry. Returns True if an entry was removed."""
        cache_key = compute_cache_key(namespace, key)
        async with self._lock:
            return self._entries.pop(cache_key, None) is not None

    def _remove_expired(self, now: datetime) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(
                "Swept expired cache entries",
                extra={"event": "cache.swept", "removed": len(expired), "remaining": len(self._entries)},
            )
        return len(expired)

    def _sweep_if_due(self) -> None:
        now = self.clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + timedelta(seconds=self.config.sweep_interval_seconds)
        self._remove_expired(now)

    async def sweep_expired(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        async with self._lock:
            return self._remove_expired(self.clock())

    async def clear(self) -> None:
        """Drop all entries. In-flight calls and budget counters are untouched."""
        async with self._lock:
            self._entries.clear()

    async def status(self) -> CacheStatus:
        """Return budget and cache counters."""
        async with self._lock:
            state = self.budget.snapshot()
            limits = self.budget.config
            return CacheStatus(
                within_budget=self.budget.is_within_budget(),
                daily_spend_usd=state.daily_spend_usd,
                daily_limit_usd=limits.daily_limit_usd,
                remaining_budget_usd=max(0.0, limits.daily_limit_usd - state.daily_spend_usd),
                daily_tokens=state.daily_tokens,
                calls_this_hour=state.call_count_this_hour,
                hourly_call_limit=limits.hourly_call_limit,
                hourly_calls_remaining=max(0, limits.hourly_call_limit - state.call_count_this_hour),
                in_flight=len(self._in_flight),
                entries=len(self._entries),
                stats=CacheStats(**vars(self.stats)),
            )

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def __len__(self) -> int:
        return len(self._entries)


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have been cancelled; mark the exception as retrieved
    if not task.cancelled():
        task.exception()
