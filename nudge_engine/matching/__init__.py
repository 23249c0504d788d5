"""Tag matching and scoring of jobs against member profiles.

This module provides:
- TagMatcher: per-category intersection of job tags and profile attributes
- MatchScorer: weighted score and tier from an intersection
- MatchResult / TagIntersection: result models
- Utility functions for presenting match results
"""

from .engine import MatchScorer, TagMatcher, tier_for_score
from .models import MatchResult, TagIntersection
from .utils import build_rationale_dict, format_match_summary, join_names

__all__ = [
    "TagMatcher",
    "MatchScorer",
    "tier_for_score",
    "MatchResult",
    "TagIntersection",
    "build_rationale_dict",
    "format_match_summary",
    "join_names",
]
