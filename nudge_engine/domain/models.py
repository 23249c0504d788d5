"""Core domain models for jobs, member profiles, nudges and interactions.

This module defines the data structures used throughout the application:
- Job / JobTag: a job posting and the categorized tags it was labelled with
- MemberProfile: a member's normalized skills, past companies and domains
- NudgeCandidate: one ranked, explainable suggestion for a (member, job) pair
- NudgeInteraction: one append-only interaction with a nudge
- LifecycleEvent: a generic product event (job viewed, referral hired, ...)
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

from nudge_engine.utils.timestamps import ensure_utc, utc_now


class TagCategory(str, Enum):
    """Categories a job tag can belong to."""

    SKILL = "SKILL"
    COMPANY = "COMPANY"
    DOMAIN = "DOMAIN"
    LOCATION = "LOCATION"


class MatchTier(str, Enum):
    """Coarse bucket summarizing a match score, ordered NONE < LOW < MEDIUM < HIGH."""

    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, MatchTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, MatchTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, MatchTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, MatchTier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_ORDER = [MatchTier.NONE, MatchTier.LOW, MatchTier.MEDIUM, MatchTier.HIGH]


def normalize_attribute(value: str) -> str:
    """Trim and lowercase a tag name or profile attribute."""
    return " ".join(value.split()).lower()


def normalize_attribute_set(values: Optional[Iterable[Any]]) -> FrozenSet[str]:
    """Normalize an iterable of attributes into a set without blanks."""
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    normalized = set()
    for value in values:
        if value is None:
            continue
        cleaned = normalize_attribute(str(value))
        if cleaned:
            normalized.add(cleaned)
    return frozenset(normalized)


class JobTag(BaseModel):
    """A categorized tag attached to a job. Immutable once attached."""

    name: str = Field(..., description="Tag name as entered (case preserved)")
    category: TagCategory

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        """Strip whitespace and reject empty names."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Tag name cannot be empty or whitespace-only")
        return stripped

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> Any:
        """Accept category names in any case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @property
    def normalized_name(self) -> str:
        return normalize_attribute(self.name)


class Job(BaseModel):
    """A job posting as seen by the matching engine.

    Only the tags take part in scoring; title, company and description are used
    for message text and summaries.
    """

    id: str = Field(..., description="Job identifier")
    title: str = Field("", description="Job title")
    company: str = Field("", description="Hiring company name")
    description: str = Field("", description="Full job description text")
    location: Optional[str] = Field(None, description="Job location")
    tags: List[JobTag] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Job id cannot be empty")
        return stripped

    @field_validator("title", "company", "description")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()

    def tags_in(self, category: TagCategory) -> List[JobTag]:
        """Return the job's tags of one category, in attachment order."""
        return [tag for tag in self.tags if tag.category == category]


class MemberProfile(BaseModel):
    """A member's matching attributes.

    ``skills``, ``past_companies`` and ``domains`` are case-normalized sets:
    duplicates collapse and order is irrelevant.
    """

    member_id: str = Field(..., description="Member identifier")
    name: Optional[str] = Field(None, description="Display name")
    skills: FrozenSet[str] = Field(default_factory=frozenset)
    past_companies: FrozenSet[str] = Field(default_factory=frozenset)
    domains: FrozenSet[str] = Field(default_factory=frozenset)
    preferences: Dict[str, str] = Field(default_factory=dict)

    @field_validator("member_id")
    @classmethod
    def validate_member_id(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("member_id cannot be empty")
        return stripped

    @field_validator("skills", "past_companies", "domains", mode="before")
    @classmethod
    def normalize_sets(cls, v: Any) -> FrozenSet[str]:
        return normalize_attribute_set(v)

    @field_validator("preferences", mode="before")
    @classmethod
    def stringify_preferences(cls, v: Any) -> Dict[str, str]:
        """Preferences are a flat string map; drop null values."""
        if v is None:
            return {}
        return {str(key): str(value) for key, value in dict(v).items() if value is not None}

    @property
    def has_attributes(self) -> bool:
        """True when at least one scored category is non-empty."""
        return bool(self.skills or self.past_companies or self.domains)

    @property
    def display_name(self) -> str:
        return self.name or "there"


class NudgeCandidate(BaseModel):
    """A ranked, explainable nudge for one (member, job) pair.

    ``nudge_id`` is a deterministic hash of member id, job id and rule id, so
    the same structural match always yields the same identifier.
    """

    nudge_id: str
    rule_id: str
    message: str
    explanation: str
    priority: int
    source: str = Field("static", description="'ai' for enriched text, 'static' for templates")


class InteractionAction(str, Enum):
    """Actions a member can take on a nudge."""

    VIEWED = "VIEWED"
    HOVERED = "HOVERED"
    CLICKED = "CLICKED"
    SHARE_WHATSAPP = "SHARE_WHATSAPP"
    SHARE_LINKEDIN = "SHARE_LINKEDIN"
    SHARE_EMAIL = "SHARE_EMAIL"
    COPY_MESSAGE = "COPY_MESSAGE"
    DISMISSED = "DISMISSED"
    REFERRED = "REFERRED"


# Actions that count as engagement in the funnel
ENGAGEMENT_ACTIONS = frozenset(
    {
        InteractionAction.HOVERED,
        InteractionAction.CLICKED,
        InteractionAction.SHARE_WHATSAPP,
        InteractionAction.SHARE_LINKEDIN,
        InteractionAction.SHARE_EMAIL,
        InteractionAction.COPY_MESSAGE,
    }
)


class NudgeInteraction(BaseModel):
    """One interaction with a nudge. Append-only; never mutated after storage."""

    interaction_id: Optional[str] = Field(None, description="Assigned by the interaction log")
    member_id: str
    job_id: str
    nudge_id: Optional[str] = None
    action: InteractionAction
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("member_id", "job_id")
    @classmethod
    def require_identifier(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("cannot be empty or whitespace-only")
        return stripped

    @field_validator("nudge_id")
    @classmethod
    def blank_nudge_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    @field_validator("action", mode="before")
    @classmethod
    def coerce_action(cls, v: Any) -> Any:
        """Accept action names in any case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("created_at")
    @classmethod
    def ensure_created_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class EventType(str, Enum):
    """Generic product lifecycle events."""

    JOB_VIEWED = "JOB_VIEWED"
    NUDGE_SHOWN = "NUDGE_SHOWN"
    NUDGE_CLICKED = "NUDGE_CLICKED"
    MESSAGE_COPIED = "MESSAGE_COPIED"
    REFERRAL_STARTED = "REFERRAL_STARTED"
    REFERRAL_SUBMITTED = "REFERRAL_SUBMITTED"
    REFERRAL_STATUS_CHANGED = "REFERRAL_STATUS_CHANGED"
    CANDIDATE_HIRED = "CANDIDATE_HIRED"


class LifecycleEvent(BaseModel):
    """A generic lifecycle event used alongside interactions for funnel analytics."""

    event_id: Optional[str] = None
    type: EventType
    user_id: Optional[str] = None
    job_id: Optional[str] = None
    referral_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("user_id", "job_id", "referral_id")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("created_at")
    @classmethod
    def ensure_created_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)
