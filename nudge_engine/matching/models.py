"""Data models for the matching engine.

This module defines the data structures produced when a job's tags are
intersected with a member profile and turned into a score.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List

from nudge_engine.domain.models import MatchTier, TagCategory


@dataclass(frozen=True)
class TagIntersection:
    """Per-category overlap between a job's tags and a member profile.

    All sets hold normalized (trimmed, lowercased) names. ``display_names``
    maps each normalized name back to the tag name as written on the job.

    Attributes:
        skills: Profile skills found among the job's SKILL tags
        companies: Profile past companies found among the job's COMPANY tags
        domains: Profile domains found among the job's DOMAIN tags
        locations: Preferred location found among the job's LOCATION tags
        display_names: Normalized name -> original tag name
    """

    skills: FrozenSet[str] = frozenset()
    companies: FrozenSet[str] = frozenset()
    domains: FrozenSet[str] = frozenset()
    locations: FrozenSet[str] = frozenset()
    display_names: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def for_category(self, category: TagCategory) -> FrozenSet[str]:
        return {
            TagCategory.SKILL: self.skills,
            TagCategory.COMPANY: self.companies,
            TagCategory.DOMAIN: self.domains,
            TagCategory.LOCATION: self.locations,
        }[category]

    @property
    def is_empty(self) -> bool:
        return not (self.skills or self.companies or self.domains)


@dataclass(frozen=True)
class MatchResult:
    """Result of scoring a job against a member profile.

    Derived on demand, never persisted. ``tier`` is a monotonic bucketing of
    ``score``; LOCATION matches are reported in ``matched_locations`` but do
    not contribute to the score.

    Attributes:
        tier: Coarse bucket of the score
        score: Weighted fraction of profile attributes found among job tags, in [0, 1]
        matched_skills: Overlapping skills
        matched_companies: Overlapping past companies
        matched_domains: Overlapping domains
        matched_locations: Preferred location if the job is tagged with it
        display_names: Normalized name -> original tag name
    """

    tier: MatchTier
    score: float
    matched_skills: FrozenSet[str] = frozenset()
    matched_companies: FrozenSet[str] = frozenset()
    matched_domains: FrozenSet[str] = frozenset()
    matched_locations: FrozenSet[str] = frozenset()
    display_names: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def empty(cls) -> "MatchResult":
        """A NONE result with no matches."""
        return cls(tier=MatchTier.NONE, score=0.0)

    @property
    def is_match(self) -> bool:
        return self.tier != MatchTier.NONE

    def display(self, names: FrozenSet[str]) -> List[str]:
        """Return matched names as written on the job, sorted for stable output."""
        return sorted(self.display_names.get(name, name) for name in names)
