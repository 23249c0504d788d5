"""Nudge interaction logging and aggregation."""

from .log import NudgeInteractionLog, collapse_duplicates
from .models import InteractionFilter, NudgeStats

__all__ = [
    "NudgeInteractionLog",
    "collapse_duplicates",
    "InteractionFilter",
    "NudgeStats",
]
