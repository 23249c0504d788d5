"""Stage-based funnel aggregation over interactions and lifecycle events.

A subject is a (member, job) pair. Each interaction or event is mapped to the
funnel stage it proves was reached, and each subject is placed at the highest
stage it reached inside the window. A stage's count is the number of subjects
at that stage or later, so counts never increase along the funnel and a
subject that skipped logging an earlier stage is still counted once.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from nudge_engine.config.models import FunnelConfig
from nudge_engine.domain.exceptions import ValidationError
from nudge_engine.domain.models import (
    ENGAGEMENT_ACTIONS,
    EventType,
    InteractionAction,
    LifecycleEvent,
    NudgeInteraction,
)
from nudge_engine.logging import get_logger
from nudge_engine.persistence import (
    EventRepository,
    InteractionRepository,
    SessionScope,
    get_session,
)
from nudge_engine.utils.timestamps import Clock, days_ago, utc_now

from .events import HIRED_STATUS
from .models import FUNNEL_STAGES, FunnelSnapshot, FunnelStage, StageCount

logger = get_logger(__name__, component="funnel")

Subject = Tuple[str, str]

EVENT_STAGES = {
    EventType.JOB_VIEWED: FunnelStage.VIEWED,
    EventType.NUDGE_SHOWN: FunnelStage.NUDGE_SHOWN,
    EventType.NUDGE_CLICKED: FunnelStage.ENGAGED,
    EventType.MESSAGE_COPIED: FunnelStage.ENGAGED,
    EventType.REFERRAL_STARTED: FunnelStage.REFERRED,
    EventType.REFERRAL_SUBMITTED: FunnelStage.REFERRED,
    EventType.REFERRAL_STATUS_CHANGED: FunnelStage.REFERRED,
    EventType.CANDIDATE_HIRED: FunnelStage.HIRED,
}


def stage_for_interaction(interaction: NudgeInteraction) -> FunnelStage:
    """Map a nudge interaction to the stage it proves.

    VIEWED and DISMISSED on a nudge only prove the nudge was shown.
    """
    if interaction.action == InteractionAction.REFERRED:
        return FunnelStage.REFERRED
    if interaction.action in ENGAGEMENT_ACTIONS:
        return FunnelStage.ENGAGED
    return FunnelStage.NUDGE_SHOWN


def stage_for_event(event: LifecycleEvent) -> FunnelStage:
    if event.type == EventType.REFERRAL_STATUS_CHANGED:
        new_status = str(event.metadata.get("new_status", "")).upper()
        if new_status == HIRED_STATUS:
            return FunnelStage.HIRED
    return EVENT_STAGES[event.type]


def _rate(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


def build_stage_counts(
    highest: Dict[Subject, FunnelStage], logged: Dict[Subject, Set[FunnelStage]]
) -> List[StageCount]:
    """Reduce per-subject stages into ordered StageCounts."""
    exact: Dict[FunnelStage, int] = defaultdict(int)
    implied: Dict[FunnelStage, int] = defaultdict(int)

    for subject, top in highest.items():
        exact[top] += 1
        for stage in FUNNEL_STAGES[: top.rank]:
            if stage not in logged[subject]:
                implied[stage] += 1

    stage_counts = []
    running = 0
    counts: Dict[FunnelStage, int] = {}
    for stage in reversed(FUNNEL_STAGES):
        running += exact[stage]
        counts[stage] = running

    previous: Optional[int] = None
    for stage in FUNNEL_STAGES:
        stage_counts.append(
            StageCount(
                stage=stage,
                count=counts[stage],
                exact=exact[stage],
                implied=implied[stage],
                conversion_rate=None if previous is None else _rate(counts[stage], previous),
            )
        )
        previous = counts[stage]

    return stage_counts


class FunnelAggregator:
    """Computes FunnelSnapshots on demand. Nothing is cached or stored."""

    def __init__(
        self,
        config: Optional[FunnelConfig] = None,
        session_scope: SessionScope = get_session,
        clock: Optional[Clock] = None,
    ):
        self.config = config or FunnelConfig()
        self.session_scope = session_scope
        self.clock = clock or utc_now

    def compute_funnel(
        self, job_id: Optional[str] = None, window_days: Optional[int] = None
    ) -> FunnelSnapshot:
        """Compute the funnel for one job, or all jobs, over the trailing window.

        Interactions and events at exactly the current instant are included.

        Args:
            job_id: Restrict to one job (None for all jobs)
            window_days: Window length in days (defaults to funnel.default_window_days)

        Raises:
            ValidationError: If window_days is not positive
        """
        window_days = self.config.default_window_days if window_days is None else window_days
        if window_days < 1:
            raise ValidationError(f"window_days must be at least 1 (got {window_days})")

        until = self.clock()
        since = days_ago(window_days, until)

        with self.session_scope() as session:
            interactions = InteractionRepository(session).query(job_id=job_id, since=since)
            events = EventRepository(session).query(job_id=job_id, since=since)

        highest, logged = self._place_subjects(interactions, events, until)
        stages = build_stage_counts(highest, logged)
        viewed = stages[0].count
        hired = stages[-1].count

        snapshot = FunnelSnapshot(
            job_id=job_id,
            window_days=window_days,
            since=since,
            until=until,
            stages=stages,
            subjects=len(highest),
            overall_conversion_rate=_rate(hired, viewed),
        )

        logger.info(
            "Funnel computed",
            extra={
                "event": "funnel.computed",
                "job_id": job_id,
                "window_days": window_days,
                "subjects": snapshot.subjects,
                "interactions": len(interactions),
                "lifecycle_events": len(events),
            },
        )
        return snapshot

    @staticmethod
    def _place_subjects(
        interactions: Iterable[NudgeInteraction], events: Iterable[LifecycleEvent], until
    ) -> Tuple[Dict[Subject, FunnelStage], Dict[Subject, Set[FunnelStage]]]:
        highest: Dict[Subject, FunnelStage] = {}
        logged: Dict[Subject, Set[FunnelStage]] = defaultdict(set)

        def place(subject: Subject, stage: FunnelStage) -> None:
            logged[subject].add(stage)
            current = highest.get(subject)
            if current is None or stage.rank > current.rank:
                highest[subject] = stage

        for interaction in interactions:
            if interaction.created_at > until:
                continue
            place((interaction.member_id, interaction.job_id), stage_for_interaction(interaction))

        skipped = 0
        for event in events:
            if event.created_at > until:
                continue
            if not event.user_id or not event.job_id:
                skipped += 1
                continue
            place((event.user_id, event.job_id), stage_for_event(event))

        if skipped:
            logger.debug(
                f"Skipped {skipped} events without a member or job",
                extra={"event": "funnel.events_skipped", "skipped": skipped},
            )
        return highest, logged
