"""Unit tests for rule-based nudge generation."""

import pytest

from nudge_engine.cache import BudgetBoundedCache, BudgetTracker
from nudge_engine.config.models import BudgetConfig, NudgesConfig
from nudge_engine.domain.models import MatchTier
from nudge_engine.matching.models import MatchResult
from nudge_engine.nudges import DEFAULT_RULES, NudgeGenerator, NudgeRule, RuleContext, get_rule
from nudge_engine.utils.hashing import compute_nudge_id

from tests.helpers import FakeClock, FakeEnrichmentClient, make_job, make_profile


def make_cache(daily_limit_usd: float = 10.0, hourly_call_limit: int = 1000, clock=None):
    clock = clock or FakeClock()
    budget = BudgetTracker(
        BudgetConfig(daily_limit_usd=daily_limit_usd, hourly_call_limit=hourly_call_limit), clock=clock
    )
    return BudgetBoundedCache(budget, timeout_seconds=1.0)


@pytest.fixture
def job():
    return make_job(
        tags=(
            ("Python", "SKILL"),
            ("Go", "SKILL"),
            ("Acme", "COMPANY"),
            ("Fintech", "DOMAIN"),
        )
    )


@pytest.fixture
def profile():
    return make_profile(
        skills=("python", "go"),
        past_companies=("acme",),
        domains=("fintech", "health"),
        preferences={"open_to_opportunities": "yes"},
    )


class TestRuleTable:
    """Tests for the declarative rule table."""

    def test_rule_ids_unique(self):
        """Test every rule has a distinct id."""
        ids = [rule.id for rule in DEFAULT_RULES]

        assert len(ids) == len(set(ids))
        assert get_rule("company_overlap").priority == 90
        assert get_rule("missing") is None

    def test_cache_key_is_structural(self, job, profile):
        """Test the cache key uses rule, job and sorted matched attributes only."""
        match = MatchResult(
            tier=MatchTier.MEDIUM, score=0.5, matched_skills=frozenset({"python", "go"})
        )
        ctx = RuleContext(job=job, profile=profile, match=match)

        key = get_rule("skills_overlap").cache_key(ctx)

        assert key == {"rule_id": "skills_overlap", "job_id": "job-1", "matched": ["go", "python"]}

    def test_self_referral_requires_preference_and_tier(self, job):
        """Test the self-referral hint needs an opt-in and at least a MEDIUM match."""
        rule = get_rule("self_referral")
        medium = MatchResult(tier=MatchTier.MEDIUM, score=0.5)
        low = MatchResult(tier=MatchTier.LOW, score=0.2)
        opted_in = make_profile(preferences={"open_to_opportunities": "true"})
        opted_out = make_profile(preferences={"open_to_opportunities": "no"})

        assert rule.predicate(RuleContext(job=job, profile=opted_in, match=medium))
        assert not rule.predicate(RuleContext(job=job, profile=opted_in, match=low))
        assert not rule.predicate(RuleContext(job=job, profile=opted_out, match=medium))


class TestNudgeGeneratorStatic:
    """Tests for generation without enrichment."""

    @pytest.mark.asyncio
    async def test_sorted_by_priority(self, job, profile):
        """Test candidates come back highest priority first."""
        candidates = await NudgeGenerator().generate(job, profile)

        assert [c.rule_id for c in candidates] == [
            "company_overlap",
            "skills_overlap",
            "domain_overlap",
            "self_referral",
        ]
        assert [c.priority for c in candidates] == [90, 80, 60, 50]
        assert all(c.source == "static" for c in candidates)

    @pytest.mark.asyncio
    async def test_repeat_generation_is_identical(self, job, profile):
        """Test identical inputs produce identical nudge ids in the same order."""
        generator = NudgeGenerator()

        first = await generator.generate(job, profile)
        second = await generator.generate(job, profile)

        assert [c.nudge_id for c in first] == [c.nudge_id for c in second]
        assert first[0].nudge_id == compute_nudge_id("member-1", "job-1", "company_overlap")

    @pytest.mark.asyncio
    async def test_messages_and_explanations_rendered(self, job, profile):
        """Test static text mentions the matched attributes."""
        candidates = await NudgeGenerator().generate(job, profile)
        by_rule = {c.rule_id: c for c in candidates}

        assert "Go and Python" in by_rule["skills_overlap"].message
        assert by_rule["skills_overlap"].explanation == (
            "You share 2 skills with this role: Go and Python."
        )
        assert "Acme" in by_rule["company_overlap"].explanation
        assert "Backend Engineer" in by_rule["self_referral"].message

    @pytest.mark.asyncio
    async def test_max_nudges_cap(self, job, profile):
        """Test the result is capped at max_nudges, keeping the highest priorities."""
        generator = NudgeGenerator(config=NudgesConfig(max_nudges=2))

        candidates = await generator.generate(job, profile)

        assert [c.rule_id for c in candidates] == ["company_overlap", "skills_overlap"]

    @pytest.mark.asyncio
    async def test_disabled_rule_and_priority_override(self, job, profile):
        """Test per-rule overrides from configuration."""
        config = NudgesConfig(
            rules={"company_overlap": {"enabled": False}, "domain_overlap": {"priority": 95}}
        )

        candidates = await NudgeGenerator(config=config).generate(job, profile)

        assert [c.rule_id for c in candidates] == ["domain_overlap", "skills_overlap", "self_referral"]

    @pytest.mark.asyncio
    async def test_priority_ties_keep_declaration_order(self, job, profile):
        """Test equal priorities are ordered by rule declaration."""
        config = NudgesConfig(
            rules={
                "skills_overlap": {"priority": 10},
                "company_overlap": {"priority": 10},
                "domain_overlap": {"priority": 10},
                "self_referral": {"priority": 10},
            }
        )

        candidates = await NudgeGenerator(config=config).generate(job, profile)

        assert [c.rule_id for c in candidates] == [rule.id for rule in DEFAULT_RULES]

    @pytest.mark.asyncio
    async def test_missing_input_returns_empty(self, job, profile):
        """Test absent job or profile is a normal empty outcome."""
        generator = NudgeGenerator()

        assert await generator.generate(None, profile) == []
        assert await generator.generate(job, None) == []

    @pytest.mark.asyncio
    async def test_no_overlap_returns_empty(self, job):
        """Test a profile sharing nothing with the job gets no nudges."""
        profile = make_profile(skills=("cobol",))

        assert await NudgeGenerator().generate(job, profile) == []

    @pytest.mark.asyncio
    async def test_custom_rule_table(self, job, profile):
        """Test a generator evaluates whatever rule table it is given."""
        always = NudgeRule(
            id="skills_overlap",
            priority=1,
            predicate=lambda ctx: True,
            matched=lambda ctx: ctx.match.matched_skills,
            focus="test",
        )

        candidates = await NudgeGenerator(rules=[always]).generate(job, profile)

        assert len(candidates) == 1
        assert candidates[0].priority == 1


class TestNudgeGeneratorEnriched:
    """Tests for generation through the budget-bounded cache."""

    @pytest.mark.asyncio
    async def test_enriched_messages_cached(self, job, profile):
        """Test enriched text is used and reused for the same structural match."""
        client = FakeEnrichmentClient(text='"Know a Python dev at Acme?"')
        cache = make_cache()
        generator = NudgeGenerator(cache=cache, client=client)

        first = await generator.generate(job, profile)
        second = await generator.generate(job, profile)

        assert all(c.source == "ai" for c in first)
        assert first[0].message == "Know a Python dev at Acme?"
        assert client.call_count == len(first)
        assert [c.message for c in second] == [c.message for c in first]

    @pytest.mark.asyncio
    async def test_prompt_excludes_member_identity(self, job, profile):
        """Test prompts are built from job fields and matched attributes only."""
        client = FakeEnrichmentClient()
        generator = NudgeGenerator(cache=make_cache(), client=client)

        await generator.generate(job, profile)

        assert client.calls
        assert all("member-1" not in call["prompt"] for call in client.calls)

    @pytest.mark.asyncio
    async def test_budget_exceeded_falls_back_to_static(self, job, profile):
        """Test nudges are still produced when the budget is exhausted."""
        client = FakeEnrichmentClient()
        generator = NudgeGenerator(cache=make_cache(daily_limit_usd=0.0), client=client)

        candidates = await generator.generate(job, profile)

        assert len(candidates) == 4
        assert all(c.source == "static" for c in candidates)
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_upstream_failure_falls_back_to_static(self, job, profile):
        """Test an upstream failure degrades to static text, same ids."""
        failing = NudgeGenerator(cache=make_cache(), client=FakeEnrichmentClient(fail=True))

        candidates = await failing.generate(job, profile)
        static = await NudgeGenerator().generate(job, profile)

        assert [c.source for c in candidates] == ["static"] * 4
        assert [c.nudge_id for c in candidates] == [c.nudge_id for c in static]
        assert [c.message for c in candidates] == [c.message for c in static]

    @pytest.mark.asyncio
    async def test_empty_enrichment_text_falls_back(self, job, profile):
        """Test blank enrichment output is treated as a failure."""
        generator = NudgeGenerator(cache=make_cache(), client=FakeEnrichmentClient(text='  ""  '))

        candidates = await generator.generate(job, profile)

        assert all(c.source == "static" for c in candidates)
