"""Scheduler service for the periodic retention purge."""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from nudge_engine.analytics.events import EventRecorder
from nudge_engine.domain.exceptions import NudgeEngineError
from nudge_engine.interactions.log import NudgeInteractionLog
from nudge_engine.logging import get_logger

logger = get_logger(__name__, component="scheduler")

PURGE_JOB_ID = "retention-purge"


@dataclass(frozen=True)
class PurgeResult:
    """Rows deleted by one purge run."""

    events_deleted: int = 0
    interactions_deleted: int = 0
    failed: bool = False


class RetentionPurgeJob:
    """Deletes events and interactions older than the retention window.

    A failed run is logged and reported in the result; the next scheduled
    run tries again.
    """

    def __init__(
        self,
        interaction_log: NudgeInteractionLog,
        event_recorder: EventRecorder,
        retention_days: int,
    ):
        self.interaction_log = interaction_log
        self.event_recorder = event_recorder
        self.retention_days = retention_days

    def __call__(self) -> PurgeResult:
        logger.info(
            "Retention purge starting",
            extra={"event": "retention.purge_started", "retention_days": self.retention_days},
        )
        try:
            events_deleted = self.event_recorder.purge_older_than(self.retention_days)
            interactions_deleted = self.interaction_log.purge_older_than(self.retention_days)
        except NudgeEngineError as e:
            logger.error(
                f"Retention purge failed: {e}",
                exc_info=True,
                extra={"event": "retention.purge_failed", "error_type": type(e).__name__},
            )
            return PurgeResult(failed=True)

        result = PurgeResult(events_deleted=events_deleted, interactions_deleted=interactions_deleted)
        logger.info(
            "Retention purge complete",
            extra={
                "event": "retention.purge_completed",
                "events_deleted": result.events_deleted,
                "interactions_deleted": result.interactions_deleted,
            },
        )
        return result


class SchedulerService:
    """
    Wraps APScheduler to run the retention purge at configured intervals.

    Uses BackgroundScheduler to run jobs in a separate thread while
    allowing the main thread to handle signals and coordinate shutdown.
    """

    def __init__(
        self,
        purge_callable: Callable[[], PurgeResult],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
        run_immediately: bool = False,
    ):
        """
        Initialize the scheduler service.

        Args:
            purge_callable: Function to call on each scheduled run (e.g., a RetentionPurgeJob)
            interval_seconds: Interval between runs in seconds
            shutdown_event: Optional event to set on shutdown for coordination
            run_immediately: Run the first purge at startup instead of after one interval
        """
        self.purge_callable = purge_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event
        self.run_immediately = run_immediately

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping purges
                "coalesce": True,  # Collapse missed runs into one
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the purge job and start the scheduler thread."""
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        now = datetime.now(timezone.utc)
        next_run = now if self.run_immediately else now + timedelta(seconds=self.interval_seconds)
        self.scheduler.add_job(
            func=self.purge_callable,
            trigger=trigger,
            id=PURGE_JOB_ID,
            name="Event and interaction retention purge",
            replace_existing=True,
            next_run_time=next_run,
        )

        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for a running purge to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> PurgeResult:
        """Run the purge synchronously in the current thread."""
        logger.info("Triggering immediate purge", extra={"event": "scheduler.trigger_now"})
        return self.purge_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(PURGE_JOB_ID)
        return job.next_run_time if job else None
