"""Spend and rate ceilings for paid enrichment calls.

BudgetTracker is the single owner of BudgetState. It is not safe to share
between coroutines on its own; BudgetBoundedCache only touches it while
holding its lock.
"""

from dataclasses import replace
from typing import Optional

from nudge_engine.config.models import BudgetConfig
from nudge_engine.enrichment.exceptions import BudgetExceeded
from nudge_engine.logging import get_logger
from nudge_engine.utils.timestamps import Clock, start_of_day, start_of_hour, utc_now

from .models import BudgetState

logger = get_logger(__name__, component="budget")


class BudgetTracker:
    """Tracks daily spend and hourly call counts in UTC windows.

    Windows roll over lazily: the first access after an hour or day boundary
    resets the stale counters. There is no background timer.
    """

    def __init__(self, config: Optional[BudgetConfig] = None, clock: Optional[Clock] = None):
        """Initialize BudgetTracker with empty counters.

        Args:
            config: Daily spend and hourly call limits
            clock: Returns the current UTC time (injectable for tests)
        """
        self.config = config or BudgetConfig()
        self.clock = clock or utc_now
        now = self.clock()
        self._state = BudgetState(
            day_window_start=start_of_day(now),
            hour_window_start=start_of_hour(now),
        )

    def _roll_windows(self) -> BudgetState:
        now = self.clock()
        day_start = start_of_day(now)
        hour_start = start_of_hour(now)
        state = self._state

        if day_start != state.day_window_start:
            logger.info(
                "Daily budget window rolled over",
                extra={
                    "event": "budget.day_rollover",
                    "previous_spend_usd": round(state.daily_spend_usd, 6),
                    "previous_tokens": state.daily_tokens,
                },
            )
            state.day_window_start = day_start
            state.daily_spend_usd = 0.0
            state.daily_tokens = 0

        if hour_start != state.hour_window_start:
            state.hour_window_start = hour_start
            state.call_count_this_hour = 0

        return state

    def check(self, in_flight: int = 0) -> None:
        """Refuse a new producer call when a ceiling has been reached.

        Calls already in flight count against the hourly ceiling so a burst of
        concurrent misses cannot overshoot it.

        Args:
            in_flight: Producer calls started but not yet settled

        Raises:
            BudgetExceeded: If daily spend or hourly calls are at their limit
        """
        state = self._roll_windows()

        if state.daily_spend_usd >= self.config.daily_limit_usd:
            raise BudgetExceeded(
                f"Daily enrichment budget exhausted: ${state.daily_spend_usd:.4f} "
                f"of ${self.config.daily_limit_usd:.2f}",
                reason="daily_spend",
                limit=self.config.daily_limit_usd,
                current=state.daily_spend_usd,
            )

        calls = state.call_count_this_hour + in_flight
        if calls >= self.config.hourly_call_limit:
            raise BudgetExceeded(
                f"Hourly enrichment call limit reached: {calls} of {self.config.hourly_call_limit}",
                reason="hourly_calls",
                limit=self.config.hourly_call_limit,
                current=calls,
            )

    def charge(self, cost_usd: float, tokens: int) -> None:
        """Record one successful producer call."""
        state = self._roll_windows()
        state.daily_spend_usd += max(0.0, float(cost_usd))
        state.daily_tokens += max(0, int(tokens))
        state.call_count_this_hour += 1

    def snapshot(self) -> BudgetState:
        """Return a copy of the current counters, after any pending rollover."""
        return replace(self._roll_windows())

    def is_within_budget(self) -> bool:
        state = self._roll_windows()
        return (
            state.daily_spend_usd < self.config.daily_limit_usd
            and state.call_count_this_hour < self.config.hourly_call_limit
        )
