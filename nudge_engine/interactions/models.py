"""Filter and result models for nudge interaction aggregation."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, field_validator, model_validator

from nudge_engine.utils.timestamps import ensure_utc, format_timestamp


class InteractionFilter(BaseModel):
    """Which interactions an aggregation covers. Every field is optional."""

    job_id: Optional[str] = None
    member_id: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    @field_validator("job_id", "member_id")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("since", "until")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_range(self):
        if self.since and self.until and self.since > self.until:
            raise ValueError("since must not be later than until")
        return self


@dataclass(frozen=True)
class NudgeStats:
    """Aggregated interaction statistics.

    ``total_shown``, ``clicked``, ``dismissed`` and ``referred`` count distinct
    nudges (member, job, nudge_id). A nudge counts as shown once it is served
    or interacted with. ``action_counts`` counts logical events per
    action after collapsing repeated submissions inside the dedup window.
    """

    total_shown: int = 0
    clicked: int = 0
    dismissed: int = 0
    referred: int = 0
    click_rate: float = 0.0
    conversion_rate: float = 0.0
    action_counts: Dict[str, int] = field(default_factory=dict)
    raw_events: int = 0
    logical_events: int = 0
    job_id: Optional[str] = None
    member_id: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    @property
    def duplicates_collapsed(self) -> int:
        return self.raw_events - self.logical_events

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "member_id": self.member_id,
            "since": format_timestamp(self.since) if self.since else None,
            "until": format_timestamp(self.until) if self.until else None,
            "total_shown": self.total_shown,
            "clicked": self.clicked,
            "dismissed": self.dismissed,
            "referred": self.referred,
            "click_rate": round(self.click_rate, 4),
            "conversion_rate": round(self.conversion_rate, 4),
            "action_counts": dict(self.action_counts),
            "raw_events": self.raw_events,
            "logical_events": self.logical_events,
        }
