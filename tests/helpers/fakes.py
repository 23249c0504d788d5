"""Fakes shared by the test suite.

FakeEnrichmentClient stands in for the HTTP inference client and FakeClock
for the UTC clock injected into the budget, cache, interaction log and
analytics components.
"""

import asyncio
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from nudge_engine.domain.models import Job, JobTag, MemberProfile
from nudge_engine.enrichment.base import BaseEnrichmentClient, InferenceResult
from nudge_engine.enrichment.exceptions import UpstreamFailure
from nudge_engine.persistence import JobRepository, MemberProfileRepository, get_engine, get_session


class FakeClock:
    """Mutable clock. Call it to read the time, advance() to move it."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


class FakeEnrichmentClient(BaseEnrichmentClient):
    """In-process enrichment client with configurable text, cost and latency."""

    def __init__(
        self,
        text: str = "Your network could know the right person for this role.",
        cost_usd: float = 0.001,
        tokens: int = 50,
        delay: float = 0.0,
        fail: bool = False,
    ):
        self.text = text
        self.cost_usd = cost_usd
        self.tokens = tokens
        self.delay = delay
        self.fail = fail
        self.calls: List[Dict[str, object]] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def infer(self, prompt: str, system: Optional[str] = None, json_mode: bool = False) -> InferenceResult:
        self.calls.append({"prompt": prompt, "system": system, "json_mode": json_mode})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise UpstreamFailure("fake upstream failure", status_code=503)
        return InferenceResult(text=self.text, cost_usd=self.cost_usd, tokens=self.tokens)

    def close(self) -> None:
        self.closed = True


def make_job(
    job_id: str = "job-1",
    title: str = "Backend Engineer",
    company: str = "Acme",
    description: str = "Build APIs for the payments platform. Requirements: Python, Go.",
    tags: Sequence[Tuple[str, str]] = (("Python", "SKILL"), ("Go", "SKILL"), ("Fintech", "DOMAIN")),
) -> Job:
    return Job(
        id=job_id,
        title=title,
        company=company,
        description=description,
        tags=[JobTag(name=name, category=category) for name, category in tags],
    )


def make_profile(
    member_id: str = "member-1",
    skills: Sequence[str] = ("python", "rust"),
    past_companies: Sequence[str] = (),
    domains: Sequence[str] = (),
    preferences: Optional[Dict[str, str]] = None,
) -> MemberProfile:
    return MemberProfile(
        member_id=member_id,
        skills=list(skills),
        past_companies=list(past_companies),
        domains=list(domains),
        preferences=preferences or {},
    )


def seed_job(job: Job) -> Job:
    """Store a job through the repository. The database must be initialized."""
    with get_session() as session:
        return JobRepository(session).upsert(job)


def seed_profile(profile: MemberProfile) -> MemberProfile:
    """Store a member profile through the repository."""
    with get_session() as session:
        return MemberProfileRepository(session).upsert(profile)


def locked_database_error() -> OperationalError:
    return OperationalError("COMMIT", None, Exception("database is locked"))


@contextmanager
def locked_commit_scope() -> Iterator[Session]:
    """Session scope whose commit fails as if another writer held the lock."""
    session = Session(bind=get_engine())
    try:
        yield session
        session.rollback()
        raise locked_database_error()
    finally:
        session.close()
