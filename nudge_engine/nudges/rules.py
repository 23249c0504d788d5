"""Declarative nudge rule table.

Each rule is a plain record: an id, a default priority, a predicate deciding
whether it fires, and builders for its static message, explanation, inference
prompt and cache key. Rules are evaluated uniformly by NudgeGenerator in
declaration order; declaration order also breaks priority ties.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from nudge_engine.domain.models import Job, MatchTier, MemberProfile
from nudge_engine.matching.models import MatchResult
from nudge_engine.matching.utils import join_names

from .templates import TemplateRenderer

OPEN_TO_OPPORTUNITIES_KEY = "open_to_opportunities"
TRUTHY_PREFERENCES = {"true", "yes", "y", "1", "on"}


@dataclass(frozen=True)
class RuleContext:
    """Inputs every rule sees for one (member, job) pair."""

    job: Job
    profile: MemberProfile
    match: MatchResult

    def template_context(self, matched: FrozenSet[str]) -> Dict[str, Any]:
        """Variables shared by all rule templates."""
        names = self.match.display(matched)
        locations = self.match.display(self.match.matched_locations)
        return {
            "job": self.job,
            "matched": names,
            "matched_text": join_names(names),
            "tier": self.match.tier.value,
            "score_percent": int(round(self.match.score * 100)),
            "location": locations[0] if locations else None,
        }


Predicate = Callable[[RuleContext], bool]
MatchedSelector = Callable[[RuleContext], FrozenSet[str]]


@dataclass(frozen=True)
class NudgeRule:
    """One row of the rule table.

    Attributes:
        id: Stable rule identifier, part of the nudge id
        priority: Default priority; higher sorts first
        predicate: Decides whether the rule emits a candidate
        matched: Selects the matched attributes the rule talks about
        focus: One-line description of the match, fed to the inference prompt
    """

    id: str
    priority: int
    predicate: Predicate
    matched: MatchedSelector
    focus: str

    def template_builder(self, ctx: RuleContext, renderer: TemplateRenderer) -> str:
        """Static message used when enrichment is unavailable."""
        return renderer.render_message(self.id, ctx.template_context(self.matched(ctx)))

    def explanation_builder(self, ctx: RuleContext, renderer: TemplateRenderer) -> str:
        """Explanation text; always templated, never enriched."""
        return renderer.render_explanation(self.id, ctx.template_context(self.matched(ctx)))

    def prompt_builder(self, ctx: RuleContext, renderer: TemplateRenderer) -> str:
        """Inference prompt. Only uses job fields and matched attributes, never member data."""
        context = ctx.template_context(self.matched(ctx))
        context["focus"] = self.focus
        return renderer.render_prompt("nudge_message", context)

    def cache_key(self, ctx: RuleContext) -> Dict[str, Any]:
        """Structural cache key: rule, job and the sorted matched-attribute set."""
        key: Dict[str, Any] = {
            "rule_id": self.id,
            "job_id": ctx.job.id,
            "matched": sorted(self.matched(ctx)),
        }
        if self.id == "self_referral":
            key["tier"] = ctx.match.tier.value
        return key


def is_open_to_opportunities(profile: MemberProfile) -> bool:
    value = profile.preferences.get(OPEN_TO_OPPORTUNITIES_KEY, "")
    return value.strip().lower() in TRUTHY_PREFERENCES


def _all_matched(ctx: RuleContext) -> FrozenSet[str]:
    return ctx.match.matched_skills | ctx.match.matched_companies | ctx.match.matched_domains


DEFAULT_RULES: Tuple[NudgeRule, ...] = (
    NudgeRule(
        id="skills_overlap",
        priority=80,
        predicate=lambda ctx: bool(ctx.match.matched_skills),
        matched=lambda ctx: ctx.match.matched_skills,
        focus="their skills overlap with the role",
    ),
    NudgeRule(
        id="company_overlap",
        priority=90,
        predicate=lambda ctx: bool(ctx.match.matched_companies),
        matched=lambda ctx: ctx.match.matched_companies,
        focus="they used to work at companies the role lists, so their ex-colleagues may fit",
    ),
    NudgeRule(
        id="domain_overlap",
        priority=60,
        predicate=lambda ctx: bool(ctx.match.matched_domains),
        matched=lambda ctx: ctx.match.matched_domains,
        focus="they have experience in the role's domain",
    ),
    NudgeRule(
        id="self_referral",
        priority=50,
        predicate=lambda ctx: is_open_to_opportunities(ctx.profile) and ctx.match.tier >= MatchTier.MEDIUM,
        matched=_all_matched,
        focus="they are open to opportunities and are a strong match themselves",
    ),
)


def get_rule(rule_id: str, rules: Optional[List[NudgeRule]] = None) -> Optional[NudgeRule]:
    for rule in rules if rules is not None else DEFAULT_RULES:
        if rule.id == rule_id:
            return rule
    return None
