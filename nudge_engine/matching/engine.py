"""Tag matching and scoring for jobs against member profiles.

This module implements the matching logic that:
1. Intersects a job's categorized tags with a member profile
2. Turns the overlap into a weighted score in [0, 1]
3. Buckets the score into a MatchTier

Both steps are pure and deterministic. Absent or sparse data produces an
empty intersection and a NONE tier, never an exception.
"""

import logging
from typing import Dict, FrozenSet, Iterable, Optional

from nudge_engine.config.models import ScoringConfig, TierThresholds
from nudge_engine.domain.models import (
    JobTag,
    MatchTier,
    MemberProfile,
    TagCategory,
    normalize_attribute,
)

from .models import MatchResult, TagIntersection

logger = logging.getLogger(__name__)

PREFERRED_LOCATION_KEY = "location"


class TagMatcher:
    """Intersects job tags with member profile attributes.

    Comparison is case-insensitive after trimming and whitespace collapsing.
    """

    def match(self, tags: Optional[Iterable[JobTag]], profile: Optional[MemberProfile]) -> TagIntersection:
        """Compute per-category overlap.

        Args:
            tags: The job's tags (may be empty or None)
            profile: Member profile (may be None)

        Returns:
            TagIntersection; empty when either side is missing
        """
        if not tags or profile is None:
            return TagIntersection()

        by_category: Dict[TagCategory, set] = {category: set() for category in TagCategory}
        display_names: Dict[str, str] = {}
        for tag in tags:
            normalized = tag.normalized_name
            by_category[tag.category].add(normalized)
            # First spelling on the job wins
            display_names.setdefault(normalized, tag.name)

        preferred_location = profile.preferences.get(PREFERRED_LOCATION_KEY)
        locations: FrozenSet[str] = frozenset()
        if preferred_location:
            wanted = normalize_attribute(preferred_location)
            if wanted in by_category[TagCategory.LOCATION]:
                locations = frozenset({wanted})

        intersection = TagIntersection(
            skills=frozenset(profile.skills & by_category[TagCategory.SKILL]),
            companies=frozenset(profile.past_companies & by_category[TagCategory.COMPANY]),
            domains=frozenset(profile.domains & by_category[TagCategory.DOMAIN]),
            locations=locations,
            display_names=display_names,
        )
        return intersection


class MatchScorer:
    """Turns a tag intersection into a score and tier.

    score = Σ(w_c × |∩_c| / |profile_c|) / Σ(w_c for non-empty profile_c),
    clamped to [0, 1]. Categories where the profile is empty are left out of
    both sums.
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        matcher: Optional[TagMatcher] = None,
        logger_instance: logging.Logger = None,
    ):
        """Initialize MatchScorer.

        Args:
            config: Scoring weights and tier thresholds (defaults apply when omitted)
            matcher: TagMatcher to use (a new one by default)
            logger_instance: Optional logger instance (defaults to module logger)
        """
        self.config = config or ScoringConfig()
        self.matcher = matcher or TagMatcher()
        self.logger = logger_instance or logger

    def score(self, tags: Optional[Iterable[JobTag]], profile: Optional[MemberProfile]) -> MatchResult:
        """Score a job's tags against a profile.

        Args:
            tags: The job's tags
            profile: Member profile

        Returns:
            MatchResult; NONE with score 0 when tags or profile attributes are absent
        """
        tags = list(tags or [])
        if not tags or profile is None or not profile.has_attributes:
            return MatchResult.empty()

        intersection = self.matcher.match(tags, profile)
        weights = self.config.weights

        categories = (
            (weights.skill, profile.skills, intersection.skills),
            (weights.company, profile.past_companies, intersection.companies),
            (weights.domain, profile.domains, intersection.domains),
        )

        weighted_sum = 0.0
        weight_total = 0.0
        for weight, profile_set, matched in categories:
            if not profile_set:
                continue
            weighted_sum += weight * len(matched) / len(profile_set)
            weight_total += weight

        score = weighted_sum / weight_total if weight_total else 0.0
        score = min(1.0, max(0.0, score))
        tier = tier_for_score(score, self.config.thresholds)

        result = MatchResult(
            tier=tier,
            score=score,
            matched_skills=intersection.skills,
            matched_companies=intersection.companies,
            matched_domains=intersection.domains,
            matched_locations=intersection.locations,
            display_names=intersection.display_names,
        )

        self.logger.debug(
            "Scored profile against job tags",
            extra={
                "event": "match.scored",
                "component": "matching",
                "member_id": profile.member_id,
                "score": round(score, 4),
                "tier": tier.value,
                "matched_skills": len(intersection.skills),
                "matched_companies": len(intersection.companies),
                "matched_domains": len(intersection.domains),
            },
        )
        return result


def tier_for_score(score: float, thresholds: Optional[TierThresholds] = None) -> MatchTier:
    """Bucket a score into a tier.

    NONE for a zero score, then LOW/MEDIUM/HIGH by ascending lower bounds,
    so higher scores never land in a lower tier.

    Example:
        >>> tier_for_score(0.5)
        <MatchTier.MEDIUM: 'MEDIUM'>
    """
    thresholds = thresholds or TierThresholds()
    if score <= 0.0 or score < thresholds.low:
        return MatchTier.NONE
    if score < thresholds.medium:
        return MatchTier.LOW
    if score < thresholds.high:
        return MatchTier.MEDIUM
    return MatchTier.HIGH
