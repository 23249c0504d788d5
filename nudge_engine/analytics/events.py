"""Lifecycle event recording and per-job event statistics."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from nudge_engine.config.models import MIN_RETENTION_DAYS
from nudge_engine.domain.exceptions import ValidationError
from nudge_engine.domain.models import EventType, LifecycleEvent
from nudge_engine.logging import get_logger
from nudge_engine.persistence import EventRepository, PersistenceError, SessionScope, get_session
from nudge_engine.utils.metadata import sanitize_metadata
from nudge_engine.utils.timestamps import Clock, days_ago, format_timestamp, utc_now

from .models import JobEventStats

logger = get_logger(__name__, component="events")

# Referral statuses that end the funnel at HIRED
HIRED_STATUS = "HIRED"

REFERRAL_EVENT_TYPES = (EventType.REFERRAL_STARTED, EventType.REFERRAL_SUBMITTED)


class EventRecorder:
    """Event sink for generic lifecycle events (job viewed, referral submitted, ...)."""

    def __init__(self, session_scope: SessionScope = get_session, clock: Optional[Clock] = None):
        self.session_scope = session_scope
        self.clock = clock or utc_now

    def record(self, event: Union[LifecycleEvent, Mapping[str, Any]]) -> LifecycleEvent:
        """Validate, sanitize and append one event.

        Raises:
            ValidationError: If the type is unknown or user_id is missing
            PersistenceError: If the append fails
        """
        if isinstance(event, LifecycleEvent):
            validated = event
        else:
            data = dict(event)
            if data.get("created_at") is None:
                data["created_at"] = self.clock()
            try:
                validated = LifecycleEvent.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic(e, "Invalid event") from e

        if not validated.user_id:
            raise ValidationError("Invalid event", errors=["user_id: required"])

        validated = validated.model_copy(
            update={"event_id": None, "metadata": sanitize_metadata(validated.metadata)}
        )

        try:
            with self.session_scope() as session:
                stored = EventRepository(session).append(validated)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record {validated.type.value} event: {e}") from e

        logger.info(
            f"Recorded {stored.type.value} event",
            extra={
                "event": "event.recorded",
                "event_type": stored.type.value,
                "event_id": stored.event_id,
                "user_id": stored.user_id,
                "job_id": stored.job_id,
            },
        )
        return stored

    def _track(
        self,
        event_type: EventType,
        user_id: str,
        job_id: Optional[str],
        metadata: Dict[str, Any],
        stamp_field: str,
        referral_id: Optional[str] = None,
    ) -> LifecycleEvent:
        now = self.clock()
        return self.record(
            {
                "type": event_type,
                "user_id": user_id,
                "job_id": job_id,
                "referral_id": referral_id,
                "metadata": {**metadata, stamp_field: format_timestamp(now)},
                "created_at": now,
            }
        )

    def track_job_view(
        self, user_id: str, job_id: str, metadata: Optional[Mapping[str, Any]] = None
    ) -> LifecycleEvent:
        return self._track(EventType.JOB_VIEWED, user_id, job_id, dict(metadata or {}), "viewed_at")

    def track_nudges_shown(
        self,
        user_id: str,
        job_id: str,
        nudge_count: int,
        nudge_categories: Iterable[str],
        nudge_ids: Iterable[str] = (),
    ) -> LifecycleEvent:
        """Record the nudges served to a member. ``nudge_ids`` feed the stats denominator."""
        return self._track(
            EventType.NUDGE_SHOWN,
            user_id,
            job_id,
            {
                "nudge_count": nudge_count,
                "nudge_categories": list(nudge_categories),
                "nudge_ids": list(nudge_ids),
            },
            "shown_at",
        )

    def track_message_copied(
        self, user_id: str, job_id: str, message_type: str, nudge_id: Optional[str] = None
    ) -> LifecycleEvent:
        return self._track(
            EventType.MESSAGE_COPIED,
            user_id,
            job_id,
            {"message_type": message_type, "nudge_id": nudge_id},
            "copied_at",
        )

    def track_referral_status_change(
        self,
        user_id: str,
        referral_id: str,
        job_id: str,
        previous_status: str,
        new_status: str,
    ) -> LifecycleEvent:
        """Record a referral status transition. A new status of HIRED ends the funnel."""
        return self._track(
            EventType.REFERRAL_STATUS_CHANGED,
            user_id,
            job_id,
            {"previous_status": previous_status.upper(), "new_status": new_status.upper()},
            "changed_at",
            referral_id=referral_id,
        )

    def job_event_stats(self, job_id: str) -> JobEventStats:
        if not job_id:
            raise ValidationError("job_id is required")

        with self.session_scope() as session:
            repo = EventRepository(session)
            counts = repo.count_by_type(job_id)
            viewers = repo.distinct_users(job_id, EventType.JOB_VIEWED)

        return JobEventStats(
            job_id=job_id,
            total_views=counts.get(EventType.JOB_VIEWED, 0),
            unique_viewers=len(viewers),
            nudges_shown=counts.get(EventType.NUDGE_SHOWN, 0),
            referrals_started=counts.get(EventType.REFERRAL_STARTED, 0),
            referrals_submitted=counts.get(EventType.REFERRAL_SUBMITTED, 0),
            messages_copied=counts.get(EventType.MESSAGE_COPIED, 0),
        )

    def viewers_without_referral(self, job_id: str) -> List[str]:
        """Users who viewed a job but never started or submitted a referral for it."""
        if not job_id:
            raise ValidationError("job_id is required")

        with self.session_scope() as session:
            repo = EventRepository(session)
            viewers = repo.distinct_users(job_id, EventType.JOB_VIEWED)
            if not viewers:
                return []
            referrers = set()
            for event_type in REFERRAL_EVENT_TYPES:
                referrers.update(repo.distinct_users(job_id, event_type))

        return [user_id for user_id in viewers if user_id not in referrers]

    def purge_older_than(self, days: int) -> int:
        """Delete events older than ``days`` days.

        Raises:
            ValidationError: If days is below MIN_RETENTION_DAYS
        """
        if days < MIN_RETENTION_DAYS:
            raise ValidationError(
                f"Cannot purge events newer than {MIN_RETENTION_DAYS} days (got {days})"
            )

        cutoff = days_ago(days, self.clock())
        with self.session_scope() as session:
            deleted = EventRepository(session).purge_older_than(cutoff)

        logger.info(
            f"Purged {deleted} events older than {days} days",
            extra={"event": "events.purged", "deleted": deleted, "retention_days": days},
        )
        return deleted
