"""Test helper utilities for referral nudge engine tests."""

from .fakes import (
    FakeClock,
    FakeEnrichmentClient,
    locked_commit_scope,
    locked_database_error,
    make_job,
    make_profile,
    seed_job,
    seed_profile,
)

__all__ = [
    "FakeClock",
    "FakeEnrichmentClient",
    "locked_commit_scope",
    "locked_database_error",
    "make_job",
    "make_profile",
    "seed_job",
    "seed_profile",
]
