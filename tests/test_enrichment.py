"""Unit tests for the enrichment client, factory and producers."""

import json
from unittest.mock import Mock

import pytest
import requests

from nudge_engine.cache import BudgetBoundedCache, BudgetTracker
from nudge_engine.config.environment import EnvironmentConfig
from nudge_engine.config.models import BudgetConfig, EnrichmentConfig
from nudge_engine.enrichment import (
    BudgetExceeded,
    HTTPEnrichmentClient,
    UpstreamFailure,
    UpstreamTimeout,
    get_enrichment_client,
)
from nudge_engine.enrichment.producers import (
    EnrichmentProducers,
    classify_match_reason,
    static_contact_insights,
    static_summary,
    truncate_text,
)

from tests.helpers import FakeClock, FakeEnrichmentClient, make_job


def make_response(status_code=200, payload=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def completion(content, prompt_tokens=100, completion_tokens=50):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


@pytest.fixture
def http_client():
    config = EnrichmentConfig(
        model="test-model", input_price_per_1k=0.001, output_price_per_1k=0.002, timeout_seconds=5
    )
    client = HTTPEnrichmentClient(api_key="sk-test", base_url="https://llm.example.com/v1/", config=config)
    client._session = Mock()
    yield client


def make_producers(client, daily_limit_usd=10.0):
    budget = BudgetTracker(BudgetConfig(daily_limit_usd=daily_limit_usd), clock=FakeClock())
    return EnrichmentProducers(BudgetBoundedCache(budget, timeout_seconds=1.0), client=client)


class TestHTTPEnrichmentClient:
    """Tests for the requests-based inference client."""

    def test_requires_credentials(self):
        """Test empty api key or base URL is rejected."""
        with pytest.raises(ValueError, match="api_key"):
            HTTPEnrichmentClient(api_key=" ", base_url="https://llm.example.com")
        with pytest.raises(ValueError, match="base_url"):
            HTTPEnrichmentClient(api_key="sk", base_url="")

    def test_session_headers(self):
        """Test auth and user agent headers are set on the session."""
        client = HTTPEnrichmentClient(api_key="sk-test", base_url="https://llm.example.com/v1")

        assert client._session.headers["Authorization"] == "Bearer sk-test"
        assert client._session.headers["User-Agent"] == "ReferralNudgeEngine/1.0"
        client.close()

    @pytest.mark.asyncio
    async def test_success_computes_cost(self, http_client):
        """Test a successful call returns text, tokens and cost from usage."""
        http_client._session.post.return_value = make_response(payload=completion("  Hello  "))

        result = await http_client.infer("prompt", system="be brief", json_mode=True)

        assert result.text == "Hello"
        assert result.tokens == 150
        assert result.cost_usd == pytest.approx(100 / 1000 * 0.001 + 50 / 1000 * 0.002)

        args, kwargs = http_client._session.post.call_args
        assert args[0] == "https://llm.example.com/v1/chat/completions"
        assert kwargs["timeout"] == 5
        payload = kwargs["json"]
        assert payload["model"] == "test-model"
        assert payload["messages"][0] == {"role": "system", "content": "be brief"}
        assert payload["messages"][1] == {"role": "user", "content": "prompt"}
        assert payload["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_missing_usage_costs_nothing(self, http_client):
        """Test a response without usage is free rather than an error."""
        http_client._session.post.return_value = make_response(
            payload={"choices": [{"message": {"content": "hi"}}]}
        )

        result = await http_client.infer("prompt")

        assert result.cost_usd == 0.0
        assert result.tokens == 0

    @pytest.mark.asyncio
    async def test_timeout(self, http_client):
        """Test requests timeouts become UpstreamTimeout."""
        http_client._session.post.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(UpstreamTimeout):
            await http_client.infer("prompt")

    @pytest.mark.asyncio
    async def test_connection_error(self, http_client):
        """Test transport errors become UpstreamFailure."""
        http_client._session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(UpstreamFailure) as exc_info:
            await http_client.infer("prompt")
        assert not isinstance(exc_info.value, UpstreamTimeout)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 401, 429, 500, 503])
    async def test_http_errors(self, http_client, status_code):
        """Test 4xx and 5xx responses become UpstreamFailure with the status code."""
        http_client._session.post.return_value = make_response(status_code=status_code, reason="Nope")

        with pytest.raises(UpstreamFailure) as exc_info:
            await http_client.infer("prompt")
        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_invalid_json(self, http_client):
        """Test an unparseable body is an UpstreamFailure."""
        http_client._session.post.return_value = make_response(payload=ValueError("bad json"))

        with pytest.raises(UpstreamFailure, match="parse JSON"):
            await http_client.infer("prompt")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{}, {"choices": []}, {"choices": [{"message": {}}]}, {"choices": [{"message": {"content": "  "}}]}],
    )
    async def test_unexpected_shapes(self, http_client, payload):
        """Test malformed or empty completions are UpstreamFailure."""
        http_client._session.post.return_value = make_response(payload=payload)

        with pytest.raises(UpstreamFailure):
            await http_client.infer("prompt")


class TestFactory:
    """Tests for get_enrichment_client."""

    def test_disabled_without_api_key(self):
        """Test no client is created without an API key."""
        assert get_enrichment_client(EnrichmentConfig(), EnvironmentConfig()) is None

    def test_creates_http_client(self):
        """Test a client is created from environment settings."""
        env = EnvironmentConfig(enrichment_api_key="sk-test", enrichment_base_url="https://llm.example.com/v1/")

        client = get_enrichment_client(EnrichmentConfig(model="m"), env)

        assert isinstance(client, HTTPEnrichmentClient)
        assert client.base_url == "https://llm.example.com/v1"
        assert client.config.model == "m"
        client.close()


class TestSummarizeJob:
    """Tests for job summaries."""

    @pytest.mark.asyncio
    async def test_enriched_summary_cached(self):
        """Test bullets are parsed, capped at three and cached by content hash."""
        client = FakeEnrichmentClient(text=json.dumps({"bullets": ["a", "b", "c", "d"]}))
        producers = make_producers(client)
        job = make_job()

        first = await producers.summarize_job(job)
        second = await producers.summarize_job(job)

        assert first.bullets == ["a", "b", "c"]
        assert first.source == "ai"
        assert second == first
        assert client.call_count == 1
        assert client.calls[0]["json_mode"] is True

    @pytest.mark.asyncio
    async def test_edited_description_resummarized(self):
        """Test a changed description produces a new cache key."""
        client = FakeEnrichmentClient(text=json.dumps({"bullets": ["a"]}))
        producers = make_producers(client)

        await producers.summarize_job(make_job(description="Build APIs."))
        await producers.summarize_job(make_job(description="Build data pipelines."))

        assert client.call_count == 2

    @pytest.mark.asyncio
    async def test_failure_raises_without_fallback(self):
        """Test enrichment-only operations surface upstream errors."""
        producers = make_producers(FakeEnrichmentClient(fail=True))

        with pytest.raises(UpstreamFailure):
            await producers.summarize_job(make_job())

    @pytest.mark.asyncio
    async def test_budget_exceeded_raises_without_fallback(self):
        """Test a budget refusal surfaces as BudgetExceeded."""
        producers = make_producers(FakeEnrichmentClient(), daily_limit_usd=0.0)

        with pytest.raises(BudgetExceeded):
            await producers.summarize_job(make_job())

    @pytest.mark.asyncio
    async def test_fallback_summary(self):
        """Test the static summary when asked to fall back."""
        producers = make_producers(FakeEnrichmentClient(fail=True))

        summary = await producers.summarize_job(make_job(), use_fallback=True)

        assert summary.source == "static"
        assert summary.bullets == [
            "Build APIs for the payments platform",
            "Key skills: Python, Go",
            "Collaborate with cross-functional teams",
        ]

    @pytest.mark.asyncio
    async def test_invalid_json_not_cached(self):
        """Test a non-JSON response is a failure and is retried next time."""
        client = FakeEnrichmentClient(text="not json")
        producers = make_producers(client)

        with pytest.raises(UpstreamFailure):
            await producers.summarize_job(make_job())

        client.text = json.dumps({"bullets": ["ok"]})
        assert (await producers.summarize_job(make_job())).bullets == ["ok"]

    @pytest.mark.asyncio
    async def test_no_client_configured(self):
        """Test a missing client is treated as enrichment unavailable."""
        producers = make_producers(None)

        with pytest.raises(UpstreamFailure, match="not configured"):
            await producers.summarize_job(make_job())
        assert (await producers.summarize_job(make_job(), use_fallback=True)).source == "static"


class TestReferralMessage:
    """Tests for shareable referral messages."""

    @pytest.mark.asyncio
    async def test_enriched_message(self):
        """Test subject and body are parsed from the JSON response."""
        client = FakeEnrichmentClient(text=json.dumps({"subject": "Hi", "body": "Know anyone?"}))
        producers = make_producers(client)

        message = await producers.generate_referral_message(make_job(), "skill overlap", matched=["Python"])

        assert (message.subject, message.body, message.source) == ("Hi", "Know anyone?", "ai")
        assert "Python" in client.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_missing_subject_defaulted(self):
        """Test a body-only response gets a default subject."""
        producers = make_producers(FakeEnrichmentClient(text=json.dumps({"body": "Know anyone?"})))

        message = await producers.generate_referral_message(make_job(), "generic")

        assert message.subject == "Know anyone for this Backend Engineer role?"

    @pytest.mark.asyncio
    async def test_fallback_company_template(self):
        """Test the static company template mentions the matched company."""
        producers = make_producers(FakeEnrichmentClient(fail=True))

        message = await producers.generate_referral_message(
            make_job(), "company", matched=["Acme"], use_fallback=True
        )

        assert message.source == "static"
        assert message.subject == "Know anyone for this Backend Engineer role?"
        assert "Since you worked at Acme" in message.body
        assert "\n" not in message.body

    @pytest.mark.asyncio
    async def test_matched_order_shares_cache_entry(self):
        """Test matched attributes are a set in the cache key."""
        client = FakeEnrichmentClient(text=json.dumps({"subject": "s", "body": "b"}))
        producers = make_producers(client)

        await producers.generate_referral_message(make_job(), "skill", matched=["Go", "Python"])
        await producers.generate_referral_message(make_job(), "skill", matched=["Python", "Go", " Go "])

        assert client.call_count == 1


class TestContactInsights:
    """Tests for contact insights."""

    @pytest.mark.asyncio
    async def test_enriched_insights(self):
        """Test roles and departments are parsed and capped."""
        text = json.dumps(
            {"roles": ["EM", "CTO", "Lead", "VP"], "departments": ["Engineering"], "description": "Ask the EM."}
        )
        producers = make_producers(FakeEnrichmentClient(text=text))

        insights = await producers.contact_insights(make_job())

        assert insights.roles == ["EM", "CTO", "Lead"]
        assert insights.departments == ["Engineering"]
        assert insights.source == "ai"

    @pytest.mark.asyncio
    async def test_fallback_insights(self):
        """Test heuristic insights when enrichment is unavailable."""
        producers = make_producers(FakeEnrichmentClient(), daily_limit_usd=0.0)

        insights = await producers.contact_insights(make_job(), use_fallback=True)

        assert insights.source == "static"
        assert insights.roles == ["Hiring Manager", "Team Lead", "HR Recruiter"]


class TestStaticHelpers:
    """Tests for the static fallback helpers."""

    @pytest.mark.parametrize(
        "reason,expected",
        [
            ("Company match", "company"),
            ("ex-colleague", "company"),
            ("skills overlap", "skill"),
            ("same industry", "domain"),
            ("", "generic"),
            (None, "generic"),
        ],
    )
    def test_classify_match_reason(self, reason, expected):
        """Test free-text reasons map onto template families."""
        assert classify_match_reason(reason) == expected

    def test_truncate_text(self):
        """Test long text is cut with an ellipsis."""
        assert truncate_text("short", 10) == "short"
        assert truncate_text("a" * 20, 10) == "aaaaaaa..."

    def test_static_summary_without_description(self):
        """Test a bare job still gets three bullets."""
        job = make_job(description="", tags=())

        bullets = static_summary(job)

        assert bullets == [
            "Work as Backend Engineer in a dynamic team environment",
            "Build and deliver high-quality solutions",
            "Collaborate with cross-functional teams",
        ]

    def test_static_contact_insights_for_managers(self):
        """Test manager titles suggest engineering leadership."""
        job = make_job(title="Engineering Manager", description="Lead a team of data engineers")

        insights = static_contact_insights(job)

        assert insights.roles[:2] == ["Engineering Manager", "Director of Engineering"]
        assert insights.departments == ["Engineering", "Data", "HR/People Ops"]
