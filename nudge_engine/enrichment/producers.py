"""Enriched job summaries, referral messages and contact insights.

Every call goes through the budget-bounded cache. Keys are structural (job id,
content hash, matched attributes), never free text. When enrichment is
unavailable the caller either gets the error or, with ``use_fallback=True``,
a static result built from the job itself.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from nudge_engine.cache.models import ProducerResult
from nudge_engine.cache.service import BudgetBoundedCache
from nudge_engine.domain.models import Job, TagCategory
from nudge_engine.logging import get_logger
from nudge_engine.matching.utils import join_names
from nudge_engine.nudges.templates import TemplateRenderer
from nudge_engine.utils.hashing import compute_content_hash

from .base import BaseEnrichmentClient
from .exceptions import EnrichmentError, UpstreamFailure

logger = get_logger(__name__, component="enrichment")

SUMMARY_NAMESPACE = "summary"
MESSAGE_NAMESPACE = "message"
INSIGHTS_NAMESPACE = "insights"

JSON_SYSTEM_PROMPT = "You are a concise, friendly recruiting assistant. Always respond with valid JSON."
MAX_DESCRIPTION_CHARS = 1500


@dataclass(frozen=True)
class JobSummary:
    bullets: List[str]
    source: str


@dataclass(frozen=True)
class GeneratedMessage:
    subject: str
    body: str
    source: str


@dataclass(frozen=True)
class ContactInsights:
    roles: List[str]
    departments: List[str]
    description: str
    source: str = "static"


def classify_match_reason(match_reason: str) -> str:
    """Map a free-text match reason onto a message template family.

    Returns one of "company", "skill", "domain" or "generic".
    """
    reason = (match_reason or "").lower()
    if "company" in reason or "colleague" in reason:
        return "company"
    if "skill" in reason:
        return "skill"
    if "domain" in reason or "industry" in reason:
        return "domain"
    return "generic"


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."


class EnrichmentProducers:
    """Cache-backed producers for enrichment-only operations."""

    def __init__(
        self,
        cache: BudgetBoundedCache,
        client: Optional[BaseEnrichmentClient] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.cache = cache
        self.client = client
        self.renderer = renderer or TemplateRenderer()

    async def summarize_job(self, job: Job, use_fallback: bool = False) -> JobSummary:
        """Summarize a job in three short bullets.

        Keyed on job id plus a hash of title, description and company, so an
        edited description produces a fresh summary.

        Raises:
            BudgetExceeded / UpstreamFailure: Enrichment unavailable and ``use_fallback`` is False
        """
        key = {
            "job_id": job.id,
            "content_hash": compute_content_hash(job.title, job.description, job.company),
        }
        prompt = self.renderer.render_prompt(
            "job_summary",
            {"title": job.title, "description": truncate_text(job.description, MAX_DESCRIPTION_CHARS)},
        )

        def parse(data: Dict[str, Any]) -> List[str]:
            bullets = [str(item).strip() for item in data.get("bullets") or [] if str(item).strip()]
            if not bullets:
                raise UpstreamFailure("Summary response contained no bullets")
            return bullets[:3]

        try:
            bullets = await self._cached_json(SUMMARY_NAMESPACE, key, prompt, parse)
        except EnrichmentError as e:
            if not use_fallback:
                raise
            self._log_fallback(SUMMARY_NAMESPACE, job.id, e)
            return JobSummary(bullets=static_summary(job), source="static")

        return JobSummary(bullets=bullets, source="ai")

    async def generate_referral_message(
        self,
        job: Job,
        match_reason: str,
        matched: Iterable[str] = (),
        use_fallback: bool = False,
    ) -> GeneratedMessage:
        """Write a shareable referral message for a job.

        Args:
            job: Job the message is about
            match_reason: Why the member was picked ("company match", "skill overlap", ...)
            matched: Matched attribute names to mention
            use_fallback: Return the static template instead of raising

        Raises:
            BudgetExceeded / UpstreamFailure: Enrichment unavailable and ``use_fallback`` is False
        """
        template = classify_match_reason(match_reason)
        matched_names = sorted({name.strip() for name in matched if name and name.strip()})
        skills = [tag.name for tag in job.tags_in(TagCategory.SKILL)]

        context = {
            "job": job,
            "template": template,
            "reason": template if template != "generic" else "general fit",
            "matched_text": join_names(matched_names),
            "skills_text": ", ".join(skills[:5]),
        }
        key = {"job_id": job.id, "template": template, "matched": matched_names}

        def parse(data: Dict[str, Any]) -> Dict[str, str]:
            subject = str(data.get("subject") or "").strip()
            body = str(data.get("body") or "").strip()
            if not body:
                raise UpstreamFailure("Message response contained no body")
            return {"subject": subject or f"Know anyone for this {job.title} role?", "body": body}

        try:
            prompt = self.renderer.render_prompt("referral_message", context)
            message = await self._cached_json(MESSAGE_NAMESPACE, key, prompt, parse)
        except EnrichmentError as e:
            if not use_fallback:
                raise
            self._log_fallback(MESSAGE_NAMESPACE, job.id, e)
            static_context = dict(context, skills_text=", ".join(skills[:3]))
            return GeneratedMessage(
                subject=self.renderer.render_fallback("referral_subject", static_context),
                body=" ".join(self.renderer.render_fallback("referral_body", static_context).split()),
                source="static",
            )

        return GeneratedMessage(subject=message["subject"], body=message["body"], source="ai")

    async def contact_insights(self, job: Job, use_fallback: bool = False) -> ContactInsights:
        """Suggest roles and departments to contact for a referral.

        Raises:
            BudgetExceeded / UpstreamFailure: Enrichment unavailable and ``use_fallback`` is False
        """
        key = {
            "job_id": job.id,
            "content_hash": compute_content_hash(job.title, job.description, job.company),
        }
        prompt = self.renderer.render_prompt(
            "contact_insights",
            {"job": job, "description": truncate_text(job.description, MAX_DESCRIPTION_CHARS)},
        )

        def parse(data: Dict[str, Any]) -> Dict[str, Any]:
            roles = [str(role).strip() for role in data.get("roles") or [] if str(role).strip()]
            if not roles:
                raise UpstreamFailure("Insights response contained no roles")
            departments = [str(d).strip() for d in data.get("departments") or [] if str(d).strip()]
            return {
                "roles": roles[:3],
                "departments": departments[:3],
                "description": str(data.get("description") or "Reach out to the hiring team.").strip(),
            }

        try:
            insights = await self._cached_json(INSIGHTS_NAMESPACE, key, prompt, parse)
        except EnrichmentError as e:
            if not use_fallback:
                raise
            self._log_fallback(INSIGHTS_NAMESPACE, job.id, e)
            return static_contact_insights(job)

        return ContactInsights(source="ai", **insights)

    async def _cached_json(self, namespace: str, key: Dict[str, Any], prompt: str, parse) -> Any:
        if self.client is None:
            raise UpstreamFailure("Enrichment is not configured")

        client = self.client

        async def producer() -> ProducerResult:
            result = await client.infer(prompt, system=JSON_SYSTEM_PROMPT, json_mode=True)
            try:
                data = json.loads(result.text)
            except ValueError as e:
                raise UpstreamFailure(f"Enrichment returned invalid JSON for '{namespace}'") from e
            if not isinstance(data, dict):
                raise UpstreamFailure(f"Enrichment returned a non-object JSON value for '{namespace}'")
            return ProducerResult(value=parse(data), cost_usd=result.cost_usd, tokens=result.tokens)

        return await self.cache.cached_call(namespace, key, producer)

    def _log_fallback(self, namespace: str, job_id: str, error: Exception) -> None:
        logger.info(
            "Enrichment unavailable, using static result",
            extra={
                "event": "enrichment.fallback",
                "namespace": namespace,
                "job_id": job_id,
                "error_type": type(error).__name__,
            },
        )


def static_summary(job: Job) -> List[str]:
    """Three bullets derived from the job text without any external call."""
    bullets: List[str] = []
    description = job.description or ""

    first_sentence = re.split(r"[.!?]", description, maxsplit=1)[0].strip()
    if len(first_sentence) > 10:
        bullets.append(truncate_text(first_sentence, 80))
    else:
        bullets.append(f"Work as {job.title or 'part of the team'} in a dynamic team environment")

    skills_match = re.search(r"(?:skills?|requirements?|qualifications?)[:\s]+([^.]+)", description, re.IGNORECASE)
    skill_tags = [tag.name for tag in job.tags_in(TagCategory.SKILL)]
    if skills_match and skills_match.group(1).strip():
        bullets.append(truncate_text(f"Key skills: {skills_match.group(1).strip()}", 80))
    elif skill_tags:
        bullets.append(truncate_text(f"Key skills: {', '.join(skill_tags[:5])}", 80))
    else:
        bullets.append("Build and deliver high-quality solutions")

    bullets.append("Collaborate with cross-functional teams")
    return bullets[:3]


def static_contact_insights(job: Job) -> ContactInsights:
    """Heuristic roles and departments from the job title and description."""
    title = (job.title or "").lower()
    description = (job.description or "").lower()

    if "manager" in title or "lead" in title:
        roles = ["Engineering Manager", "Director of Engineering"]
    elif "designer" in title:
        roles = ["Design Lead", "Product Manager"]
    elif "product" in title:
        roles = ["Product Manager", "Head of Product"]
    elif "data" in title or "ml" in title.split():
        roles = ["Data Science Manager", "ML Lead"]
    else:
        roles = ["Hiring Manager", "Team Lead"]
    roles.append("HR Recruiter")

    departments = []
    if "engineer" in description or "developer" in description:
        departments.append("Engineering")
    if "product" in description:
        departments.append("Product")
    if "design" in description:
        departments.append("Design")
    if "data" in description or "analytics" in description:
        departments.append("Data")
    if not departments:
        departments.append("Hiring Team")
    departments.append("HR/People Ops")

    return ContactInsights(
        roles=roles[:3],
        departments=departments[:3],
        description=(
            f"Reach out to the {roles[0]} or {roles[1]} at {job.company or 'the company'} "
            "to discuss this opportunity."
        ),
        source="static",
    )
