"""Domain models and exceptions for the referral nudge engine."""

from .exceptions import (
    ForbiddenError,
    NotFoundError,
    NudgeEngineError,
    UnauthorizedError,
    ValidationError,
)
from .models import (
    ENGAGEMENT_ACTIONS,
    EventType,
    InteractionAction,
    Job,
    JobTag,
    LifecycleEvent,
    MatchTier,
    MemberProfile,
    NudgeCandidate,
    NudgeInteraction,
    TagCategory,
)

__all__ = [
    "Job",
    "JobTag",
    "TagCategory",
    "MemberProfile",
    "MatchTier",
    "NudgeCandidate",
    "NudgeInteraction",
    "InteractionAction",
    "ENGAGEMENT_ACTIONS",
    "LifecycleEvent",
    "EventType",
    "NudgeEngineError",
    "ValidationError",
    "NotFoundError",
    "UnauthorizedError",
    "ForbiddenError",
]
