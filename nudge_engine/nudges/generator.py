"""Nudge generation: scored matches in, ranked explainable candidates out.

NudgeGenerator evaluates the rule table against one (member, job) pair:

1. Score the job's tags against the profile (unless a MatchResult is given)
2. Keep rules that are enabled and whose predicate fires
3. Sort by descending priority, ties by declaration order, and cap at N
4. Resolve each message through the budget-bounded cache, falling back to
   the rule's static template when enrichment is unavailable

Absent or sparse input yields an empty list, never an exception.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from nudge_engine.cache.models import ProducerResult
from nudge_engine.cache.service import BudgetBoundedCache
from nudge_engine.config.models import NudgesConfig
from nudge_engine.domain.models import Job, MemberProfile, NudgeCandidate
from nudge_engine.enrichment.base import BaseEnrichmentClient
from nudge_engine.enrichment.exceptions import EnrichmentError, UpstreamFailure
from nudge_engine.logging import get_logger, log_context
from nudge_engine.matching.engine import MatchScorer
from nudge_engine.matching.models import MatchResult
from nudge_engine.utils.hashing import compute_nudge_id

from .rules import DEFAULT_RULES, NudgeRule, RuleContext
from .templates import TemplateRenderer

logger = get_logger(__name__, component="nudges")

NUDGE_NAMESPACE = "nudge"
SOURCE_AI = "ai"
SOURCE_STATIC = "static"


class NudgeGenerator:
    """Turns a scored (member, job) pair into ranked nudge candidates.

    The cache and client are optional: without them every message comes
    from the static templates.
    """

    def __init__(
        self,
        config: Optional[NudgesConfig] = None,
        scorer: Optional[MatchScorer] = None,
        cache: Optional[BudgetBoundedCache] = None,
        client: Optional[BaseEnrichmentClient] = None,
        renderer: Optional[TemplateRenderer] = None,
        rules: Sequence[NudgeRule] = DEFAULT_RULES,
    ):
        """Initialize NudgeGenerator.

        Args:
            config: Cap and per-rule overrides
            scorer: MatchScorer used when no MatchResult is passed in
            cache: Budget-bounded cache for enriched message text
            client: Enrichment client used by cache producers
            renderer: Template renderer for static text and prompts
            rules: Ordered rule table
        """
        self.config = config or NudgesConfig()
        self.scorer = scorer or MatchScorer()
        self.cache = cache
        self.client = client
        self.renderer = renderer or TemplateRenderer()
        self.rules = tuple(rules)

    @property
    def enrichment_enabled(self) -> bool:
        return self.cache is not None and self.client is not None

    def select_rules(self, ctx: RuleContext) -> List[Tuple[NudgeRule, int]]:
        """Return the rules that fire, ranked and capped, with their effective priority."""
        fired = []
        for order, rule in enumerate(self.rules):
            if not self.config.is_rule_enabled(rule.id):
                continue
            if not rule.predicate(ctx):
                continue
            priority = self.config.priority_for(rule.id, rule.priority)
            fired.append((priority, order, rule))

        # Stable: declaration order breaks priority ties
        fired.sort(key=lambda item: (-item[0], item[1]))
        return [(rule, priority) for priority, _, rule in fired[: self.config.max_nudges]]

    async def generate(
        self,
        job: Optional[Job],
        profile: Optional[MemberProfile],
        match_result: Optional[MatchResult] = None,
    ) -> List[NudgeCandidate]:
        """Generate ranked nudges for a member and a job.

        Args:
            job: Job to generate nudges for
            profile: Member profile
            match_result: Precomputed score; computed from job tags when omitted

        Returns:
            Between 0 and ``max_nudges`` candidates, highest priority first
        """
        if job is None or profile is None or not job.id or not profile.member_id:
            logger.debug(
                "Skipping nudge generation for missing job or profile",
                extra={"event": "nudges.skipped", "reason": "missing_input"},
            )
            return []

        with log_context(member_id=profile.member_id, job_id=job.id):
            match = match_result or self.scorer.score(job.tags, profile)
            ctx = RuleContext(job=job, profile=profile, match=match)
            selected = self.select_rules(ctx)

            if not selected:
                logger.debug(
                    "No nudge rules fired",
                    extra={"event": "nudges.none", "tier": match.tier.value},
                )
                return []

            candidates = await asyncio.gather(
                *(self._build_candidate(ctx, rule, priority) for rule, priority in selected)
            )

            logger.info(
                "Generated nudges",
                extra={
                    "event": "nudges.generated",
                    "tier": match.tier.value,
                    "score": round(match.score, 4),
                    "count": len(candidates),
                    "rule_ids": [candidate.rule_id for candidate in candidates],
                    "enriched": sum(1 for candidate in candidates if candidate.source == SOURCE_AI),
                },
            )
            return list(candidates)

    async def _build_candidate(self, ctx: RuleContext, rule: NudgeRule, priority: int) -> NudgeCandidate:
        message, source = await self._resolve_message(ctx, rule)
        return NudgeCandidate(
            nudge_id=compute_nudge_id(ctx.profile.member_id, ctx.job.id, rule.id),
            rule_id=rule.id,
            message=message,
            explanation=rule.explanation_builder(ctx, self.renderer),
            priority=priority,
            source=source,
        )

    async def _resolve_message(self, ctx: RuleContext, rule: NudgeRule) -> Tuple[str, str]:
        if not self.enrichment_enabled:
            return rule.template_builder(ctx, self.renderer), SOURCE_STATIC

        prompt = rule.prompt_builder(ctx, self.renderer)
        client = self.client

        async def producer() -> ProducerResult:
            result = await client.infer(prompt)
            text = " ".join(result.text.split()).strip("\"' ")
            if not text:
                raise UpstreamFailure("Enrichment returned empty nudge text")
            return ProducerResult(value=text, cost_usd=result.cost_usd, tokens=result.tokens)

        try:
            message = await self.cache.cached_call(NUDGE_NAMESPACE, rule.cache_key(ctx), producer)
        except EnrichmentError as e:
            logger.info(
                "Enrichment unavailable, using static nudge text",
                extra={
                    "event": "nudges.fallback",
                    "rule_id": rule.id,
                    "error_type": type(e).__name__,
                },
            )
            return rule.template_builder(ctx, self.renderer), SOURCE_STATIC

        return message, SOURCE_AI
