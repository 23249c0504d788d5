"""Append-only nudge interaction log with aggregation-time dedup.

Every accepted submission is stored, including exact repeats and events that
arrive out of order; the audit trail is never rewritten. Repeats are only
collapsed when statistics are computed.
"""

from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from nudge_engine.config.models import MIN_RETENTION_DAYS, InteractionsConfig
from nudge_engine.domain.exceptions import ValidationError
from nudge_engine.domain.models import EventType, InteractionAction, LifecycleEvent, NudgeInteraction
from nudge_engine.logging import get_logger
from nudge_engine.persistence import (
    EventRepository,
    InteractionRepository,
    PersistenceError,
    SessionScope,
    get_session,
)
from nudge_engine.utils.metadata import sanitize_metadata
from nudge_engine.utils.timestamps import Clock, days_ago, utc_now

from .models import InteractionFilter, NudgeStats

logger = get_logger(__name__, component="interactions")

_NudgeKey = Tuple[str, str, Optional[str]]


def collapse_duplicates(
    interactions: Iterable[NudgeInteraction], window_seconds: int
) -> List[NudgeInteraction]:
    """Collapse identical submissions into logical events.

    Submissions with the same (member, job, nudge, action) made within
    ``window_seconds`` of the first submission of their group count once.
    A submission outside the window starts a new group.

    Returns:
        The surviving interactions, ordered by created_at (ties keep input order)
    """
    window = timedelta(seconds=window_seconds)
    anchors: Dict[Tuple[str, str, Optional[str], InteractionAction], Any] = {}
    logical = []

    for interaction in sorted(interactions, key=lambda i: i.created_at):
        identity = (
            interaction.member_id,
            interaction.job_id,
            interaction.nudge_id,
            interaction.action,
        )
        anchor = anchors.get(identity)
        if anchor is not None and interaction.created_at - anchor <= window:
            continue
        anchors[identity] = interaction.created_at
        logical.append(interaction)

    return logical


def served_nudges(events: Iterable[LifecycleEvent]) -> Set[_NudgeKey]:
    """Nudge keys listed in NUDGE_SHOWN events, shown even if never interacted with."""
    keys: Set[_NudgeKey] = set()
    for event in events:
        if not event.user_id or not event.job_id:
            continue
        for nudge_id in event.metadata.get("nudge_ids") or ():
            keys.add((event.user_id, event.job_id, nudge_id))
    return keys


def _rate(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


class NudgeInteractionLog:
    """Records nudge interactions and aggregates them into NudgeStats."""

    def __init__(
        self,
        config: Optional[InteractionsConfig] = None,
        session_scope: SessionScope = get_session,
        clock: Optional[Clock] = None,
    ):
        """Initialize NudgeInteractionLog.

        Args:
            config: Dedup window settings
            session_scope: Context manager factory yielding a SQLAlchemy session
            clock: Returns the current UTC time (injectable for tests)
        """
        self.config = config or InteractionsConfig()
        self.session_scope = session_scope
        self.clock = clock or utc_now

    @property
    def dedup_window_seconds(self) -> int:
        return self.config.dedup_window_seconds

    def record(self, interaction: Union[NudgeInteraction, Mapping[str, Any]]) -> str:
        """Validate and append one interaction.

        Args:
            interaction: A NudgeInteraction or a mapping with member_id, job_id,
                action and optional nudge_id, metadata, created_at

        Returns:
            The assigned interaction id

        Raises:
            ValidationError: If required fields are missing or malformed.
                Nothing is written in that case.
            PersistenceError: If the append fails. Callers should retry.
        """
        validated = self._validate(interaction)
        validated = validated.model_copy(
            update={"interaction_id": None, "metadata": sanitize_metadata(validated.metadata)}
        )

        try:
            with self.session_scope() as session:
                stored = InteractionRepository(session).append(validated)
        except (PersistenceError, SQLAlchemyError) as e:
            logger.error(
                f"Failed to record interaction: {e}",
                extra={
                    "event": "interaction.record_failed",
                    "member_id": validated.member_id,
                    "job_id": validated.job_id,
                    "action": validated.action.value,
                },
            )
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to record interaction: {e}") from e

        logger.info(
            "Interaction recorded",
            extra={
                "event": "interaction.recorded",
                "interaction_id": stored.interaction_id,
                "member_id": stored.member_id,
                "job_id": stored.job_id,
                "nudge_id": stored.nudge_id,
                "action": stored.action.value,
            },
        )
        return stored.interaction_id

    def _validate(self, interaction: Union[NudgeInteraction, Mapping[str, Any]]) -> NudgeInteraction:
        if isinstance(interaction, NudgeInteraction):
            return interaction
        if not isinstance(interaction, Mapping):
            raise ValidationError(
                f"Interaction must be a mapping, got {type(interaction).__name__}"
            )

        data = dict(interaction)
        if data.get("created_at") is None:
            data["created_at"] = self.clock()
        try:
            return NudgeInteraction.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(
                "Rejected invalid interaction",
                extra={"event": "interaction.rejected", "error_count": e.error_count()},
            )
            raise ValidationError.from_pydantic(e, "Invalid interaction") from e

    def list_for_member(self, member_id: str, job_id: Optional[str] = None) -> List[NudgeInteraction]:
        """Return a member's interactions in append order, optionally for one job."""
        if not member_id or not member_id.strip():
            raise ValidationError("member_id is required")

        with self.session_scope() as session:
            return InteractionRepository(session).query(
                member_id=member_id.strip(),
                job_id=job_id.strip() if job_id else None,
            )

    def aggregate_stats(
        self, filters: Union[InteractionFilter, Mapping[str, Any], None] = None
    ) -> NudgeStats:
        """Aggregate interactions matching a filter.

        Nudges served through NUDGE_SHOWN events count as shown even when the
        member never interacted with them.

        Raises:
            ValidationError: If the filter is malformed
        """
        criteria = self._coerce_filter(filters)

        with self.session_scope() as session:
            rows = InteractionRepository(session).query(
                member_id=criteria.member_id,
                job_id=criteria.job_id,
                since=criteria.since,
                until=criteria.until,
            )
            served = EventRepository(session).query(
                job_id=criteria.job_id,
                user_id=criteria.member_id,
                types=[EventType.NUDGE_SHOWN],
                since=criteria.since,
                until=criteria.until,
            )

        logical = collapse_duplicates(rows, self.dedup_window_seconds)

        shown = served_nudges(served)
        nudges_by_action: Dict[InteractionAction, Set[_NudgeKey]] = defaultdict(set)
        action_counts: Dict[str, int] = {action.value: 0 for action in InteractionAction}

        for interaction in logical:
            nudge_key = (interaction.member_id, interaction.job_id, interaction.nudge_id)
            shown.add(nudge_key)
            nudges_by_action[interaction.action].add(nudge_key)
            action_counts[interaction.action.value] += 1

        total_shown = len(shown)
        clicked = len(nudges_by_action[InteractionAction.CLICKED])
        referred = len(nudges_by_action[InteractionAction.REFERRED])

        stats = NudgeStats(
            total_shown=total_shown,
            clicked=clicked,
            dismissed=len(nudges_by_action[InteractionAction.DISMISSED]),
            referred=referred,
            click_rate=_rate(clicked, total_shown),
            conversion_rate=_rate(referred, total_shown),
            action_counts=action_counts,
            raw_events=len(rows),
            logical_events=len(logical),
            job_id=criteria.job_id,
            member_id=criteria.member_id,
            since=criteria.since,
            until=criteria.until,
        )

        logger.debug(
            "Interaction stats aggregated",
            extra={
                "event": "interaction.stats",
                "job_id": criteria.job_id,
                "member_id": criteria.member_id,
                "total_shown": total_shown,
                "duplicates_collapsed": stats.duplicates_collapsed,
            },
        )
        return stats

    @staticmethod
    def _coerce_filter(filters: Union[InteractionFilter, Mapping[str, Any], None]) -> InteractionFilter:
        if filters is None:
            return InteractionFilter()
        if isinstance(filters, InteractionFilter):
            return filters
        try:
            return InteractionFilter.model_validate(dict(filters))
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e, "Invalid interaction filter") from e

    def purge_older_than(self, days: int) -> int:
        """Delete interactions older than ``days`` days.

        Raises:
            ValidationError: If days is below MIN_RETENTION_DAYS
        """
        if days < MIN_RETENTION_DAYS:
            raise ValidationError(
                f"Cannot purge interactions newer than {MIN_RETENTION_DAYS} days (got {days})"
            )

        cutoff = days_ago(days, self.clock())
        with self.session_scope() as session:
            deleted = InteractionRepository(session).purge_older_than(cutoff)

        logger.info(
            f"Purged {deleted} interactions older than {days} days",
            extra={"event": "interactions.purged", "deleted": deleted, "retention_days": days},
        )
        return deleted
