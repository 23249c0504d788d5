"""Utility functions for presenting match results.

Helpers here turn a MatchResult into plain data for logs, CLI output and
template contexts.
"""

from typing import Any, Dict, List

from .models import MatchResult


def build_rationale_dict(match_result: MatchResult) -> Dict[str, Any]:
    """Structure a match result as a JSON-friendly dict.

    Args:
        match_result: MatchResult to describe

    Returns:
        Dict with tier, rounded score and matched names per category
    """
    return {
        "tier": match_result.tier.value,
        "score": round(match_result.score, 4),
        "matched_skills": match_result.display(match_result.matched_skills),
        "matched_companies": match_result.display(match_result.matched_companies),
        "matched_domains": match_result.display(match_result.matched_domains),
        "matched_locations": match_result.display(match_result.matched_locations),
    }


def format_match_summary(match_result: MatchResult) -> str:
    """Format a one-line, human-readable summary of a match.

    Example:
        "MEDIUM (0.50): skills python; companies acme"
    """
    parts: List[str] = []
    for label, names in (
        ("skills", match_result.matched_skills),
        ("companies", match_result.matched_companies),
        ("domains", match_result.matched_domains),
    ):
        if names:
            parts.append(f"{label} {', '.join(match_result.display(names))}")

    header = f"{match_result.tier.value} ({match_result.score:.2f})"
    if not parts:
        return f"{header}: no overlap"
    return f"{header}: {'; '.join(parts)}"


def join_names(names: List[str], conjunction: str = "and") -> str:
    """Join names into natural language: "a", "a and b", "a, b and c"."""
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} {conjunction} {names[-1]}"
