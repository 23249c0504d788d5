"""Public surface of the referral nudge engine.

ReferralNudgeService wires the matcher, nudge generator, interaction log,
event recorder, funnel aggregator and enrichment producers around one
budget-bounded cache. The routing layer in front of it is out of scope; every
method here maps to one endpoint of that layer.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Union

from nudge_engine.analytics.events import EventRecorder
from nudge_engine.analytics.funnel import FunnelAggregator
from nudge_engine.analytics.models import FunnelSnapshot
from nudge_engine.cache.budget import BudgetTracker
from nudge_engine.cache.models import CacheStatus
from nudge_engine.cache.service import BudgetBoundedCache
from nudge_engine.config.environment import EnvironmentConfig
from nudge_engine.config.models import AppConfig
from nudge_engine.domain.exceptions import ValidationError
from nudge_engine.domain.models import (
    Job,
    MatchTier,
    MemberProfile,
    NudgeCandidate,
    NudgeInteraction,
)
from nudge_engine.enrichment.base import BaseEnrichmentClient
from nudge_engine.enrichment.factory import get_enrichment_client
from nudge_engine.enrichment.producers import (
    ContactInsights,
    EnrichmentProducers,
    GeneratedMessage,
    JobSummary,
)
from nudge_engine.interactions.log import NudgeInteractionLog
from nudge_engine.interactions.models import InteractionFilter, NudgeStats
from nudge_engine.logging import get_logger, log_context
from nudge_engine.matching.engine import MatchScorer
from nudge_engine.matching.models import MatchResult
from nudge_engine.nudges.generator import NudgeGenerator
from nudge_engine.nudges.templates import TemplateRenderer
from nudge_engine.persistence import (
    JobRepository,
    MemberProfileRepository,
    PersistenceError,
    SessionScope,
    get_session,
)
from nudge_engine.utils.timestamps import Clock

logger = get_logger(__name__, component="service")


@dataclass(frozen=True)
class MemberScore:
    """One member's match against a job, as returned by score_members."""

    member_id: str
    match: MatchResult

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "tier": self.match.tier.value,
            "score": round(self.match.score, 4),
            "matched_skills": self.match.display(self.match.matched_skills),
            "matched_companies": self.match.display(self.match.matched_companies),
            "matched_domains": self.match.display(self.match.matched_domains),
        }


def _require(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def match_reason_for(match: MatchResult) -> str:
    """Pick the strongest matched category as a referral message reason."""
    if match.matched_companies:
        return "company"
    if match.matched_skills:
        return "skill"
    if match.matched_domains:
        return "domain"
    return "generic"


class ReferralNudgeService:
    """Facade over the engine components. Construct with create_service() in production.

    The async methods run their storage reads and writes in worker threads so a
    slow or locked database never stalls the event loop.
    """

    def __init__(
        self,
        config: AppConfig,
        cache: BudgetBoundedCache,
        client: Optional[BaseEnrichmentClient] = None,
        session_scope: SessionScope = get_session,
        clock: Optional[Clock] = None,
    ):
        self.config = config
        self.cache = cache
        self.client = client
        self.session_scope = session_scope

        renderer = TemplateRenderer()
        self.scorer = MatchScorer(config.scoring)
        self.generator = NudgeGenerator(
            config=config.nudges,
            scorer=self.scorer,
            cache=cache,
            client=client,
            renderer=renderer,
        )
        self.producers = EnrichmentProducers(cache, client=client, renderer=renderer)
        self.interactions = NudgeInteractionLog(
            config.interactions, session_scope=session_scope, clock=clock
        )
        self.events = EventRecorder(session_scope=session_scope, clock=clock)
        self.funnel_aggregator = FunnelAggregator(
            config.funnel, session_scope=session_scope, clock=clock
        )

    def _load_job(self, job_id: str) -> Job:
        with self.session_scope() as session:
            return JobRepository(session).get_job(job_id)

    def _load_profile(self, member_id: str) -> Optional[MemberProfile]:
        with self.session_scope() as session:
            return MemberProfileRepository(session).get_profile(member_id)

    async def get_nudges(self, member_id: str, job_id: str) -> List[NudgeCandidate]:
        """Fetch ranked nudges for a member viewing a job.

        A member without a profile gets an empty list. When at least one nudge
        is produced a NUDGE_SHOWN lifecycle event is recorded.

        Raises:
            ValidationError: If member_id or job_id is blank
            NotFoundError: If the job does not exist
        """
        member_id = _require(member_id, "member_id")
        job_id = _require(job_id, "job_id")

        with log_context(member_id=member_id, job_id=job_id):
            job = await asyncio.to_thread(self._load_job, job_id)
            profile = await asyncio.to_thread(self._load_profile, member_id)
            if profile is None:
                logger.info(
                    "No profile for member, returning no nudges",
                    extra={"event": "nudges.no_profile"},
                )
                return []

            candidates = await self.generator.generate(job, profile)

            if candidates:
                try:
                    await asyncio.to_thread(
                        self.events.track_nudges_shown,
                        member_id,
                        job_id,
                        len(candidates),
                        [c.rule_id for c in candidates],
                        [c.nudge_id for c in candidates],
                    )
                except PersistenceError as e:
                    logger.warning(
                        f"Failed to record NUDGE_SHOWN event: {e}",
                        extra={"event": "nudges.shown_tracking_failed"},
                    )

            return candidates

    def post_interaction(self, interaction: Union[NudgeInteraction, Mapping[str, Any]]) -> str:
        """Record one nudge interaction and return its id.

        Raises:
            ValidationError: If the payload is malformed
            PersistenceError: If the append fails (safe to retry)
        """
        return self.interactions.record(interaction)

    def stats(
        self, filters: Union[InteractionFilter, Mapping[str, Any], None] = None
    ) -> NudgeStats:
        return self.interactions.aggregate_stats(filters)

    def funnel(self, job_id: Optional[str] = None, window_days: Optional[int] = None) -> FunnelSnapshot:
        return self.funnel_aggregator.compute_funnel(job_id=job_id, window_days=window_days)

    async def budget_status(self) -> CacheStatus:
        return await self.cache.status()

    async def summarize_job(self, job_id: str, use_fallback: bool = False) -> JobSummary:
        """Summarize a job.

        Raises:
            NotFoundError: If the job does not exist
            BudgetExceeded / UpstreamFailure: Enrichment unavailable and ``use_fallback`` is False
        """
        job = await asyncio.to_thread(self._load_job, _require(job_id, "job_id"))
        return await self.producers.summarize_job(job, use_fallback=use_fallback)

    async def generate_referral_message(
        self,
        member_id: str,
        job_id: str,
        match_reason: Optional[str] = None,
        use_fallback: bool = False,
    ) -> GeneratedMessage:
        """Write a referral message a member can share for a job.

        The reason defaults to the member's strongest matched category.

        Raises:
            NotFoundError: If the job does not exist
            BudgetExceeded / UpstreamFailure: Enrichment unavailable and ``use_fallback`` is False
        """
        member_id = _require(member_id, "member_id")
        job = await asyncio.to_thread(self._load_job, _require(job_id, "job_id"))
        profile = await asyncio.to_thread(self._load_profile, member_id)

        match = self.scorer.score(job.tags, profile) if profile else MatchResult.empty()
        reason = match_reason or match_reason_for(match)
        matched = (
            match.display(match.matched_companies)
            + match.display(match.matched_skills)
            + match.display(match.matched_domains)
        )

        with log_context(member_id=member_id, job_id=job.id):
            return await self.producers.generate_referral_message(
                job, reason, matched=matched, use_fallback=use_fallback
            )

    async def contact_insights(self, job_id: str, use_fallback: bool = False) -> ContactInsights:
        job = await asyncio.to_thread(self._load_job, _require(job_id, "job_id"))
        return await self.producers.contact_insights(job, use_fallback=use_fallback)

    def score_members(
        self,
        job_id: str,
        member_ids: Iterable[str],
        min_tier: MatchTier = MatchTier.LOW,
    ) -> List[MemberScore]:
        """Rank members for a job, best match first.

        Members without a profile or below ``min_tier`` are left out. Ties on
        score are broken by member id.

        Raises:
            NotFoundError: If the job does not exist
        """
        job = self._load_job(_require(job_id, "job_id"))
        ids = [member_id.strip() for member_id in member_ids if member_id and member_id.strip()]

        with self.session_scope() as session:
            profiles = MemberProfileRepository(session).get_profiles(ids)

        scored = []
        for member_id, profile in profiles.items():
            match = self.scorer.score(job.tags, profile)
            if match.tier >= min_tier:
                scored.append(MemberScore(member_id=member_id, match=match))

        scored.sort(key=lambda item: (-item.match.score, item.member_id))

        logger.info(
            f"Scored {len(profiles)} members for job {job.id}",
            extra={
                "event": "matching.batch_scored",
                "job_id": job.id,
                "requested": len(ids),
                "profiles": len(profiles),
                "matched": len(scored),
                "min_tier": min_tier.value,
            },
        )
        return scored

    def close(self) -> None:
        if self.client is not None:
            self.client.close()


def create_service(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    session_scope: SessionScope = get_session,
) -> ReferralNudgeService:
    """Build a service with its own budget tracker, cache and enrichment client.

    The database must already be initialized.
    """
    budget = BudgetTracker(app_config.budget)
    cache = BudgetBoundedCache(
        budget,
        config=app_config.cache,
        timeout_seconds=app_config.enrichment.timeout_seconds,
    )
    client = get_enrichment_client(app_config.enrichment, env_config)

    logger.info(
        "Referral nudge service created",
        extra={
            "event": "service.created",
            "enrichment_enabled": client is not None,
            "daily_limit_usd": app_config.budget.daily_limit_usd,
            "max_nudges": app_config.nudges.max_nudges,
        },
    )
    return ReferralNudgeService(app_config, cache, client=client, session_scope=session_scope)
