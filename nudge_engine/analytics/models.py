"""Derived analytics results. None of these are persisted."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from nudge_engine.utils.timestamps import format_timestamp


class FunnelStage(str, Enum):
    """Funnel stages in order. A later stage implies every earlier one."""

    VIEWED = "VIEWED"
    NUDGE_SHOWN = "NUDGE_SHOWN"
    ENGAGED = "ENGAGED"
    REFERRED = "REFERRED"
    HIRED = "HIRED"

    @property
    def rank(self) -> int:
        return FUNNEL_STAGES.index(self)


FUNNEL_STAGES = [
    FunnelStage.VIEWED,
    FunnelStage.NUDGE_SHOWN,
    FunnelStage.ENGAGED,
    FunnelStage.REFERRED,
    FunnelStage.HIRED,
]


@dataclass(frozen=True)
class StageCount:
    """Subject counts for one funnel stage.

    Attributes:
        stage: The funnel stage
        count: Subjects whose highest stage is this one or later
        exact: Subjects whose highest stage is exactly this one
        implied: Subjects counted here only because they reached a later stage
            without logging this one
        conversion_rate: count / previous stage's count (None for the first stage)
    """

    stage: FunnelStage
    count: int = 0
    exact: int = 0
    implied: int = 0
    conversion_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "count": self.count,
            "exact": self.exact,
            "implied": self.implied,
            "conversion_rate": round(self.conversion_rate, 4)
            if self.conversion_rate is not None
            else None,
        }


@dataclass(frozen=True)
class FunnelSnapshot:
    """Funnel for one job (or all jobs) over a trailing window."""

    job_id: Optional[str]
    window_days: int
    since: datetime
    until: datetime
    stages: List[StageCount] = field(default_factory=list)
    subjects: int = 0
    overall_conversion_rate: float = 0.0

    def stage(self, stage: FunnelStage) -> StageCount:
        for stage_count in self.stages:
            if stage_count.stage == stage:
                return stage_count
        raise KeyError(stage)

    def count(self, stage: FunnelStage) -> int:
        return self.stage(stage).count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "window_days": self.window_days,
            "since": format_timestamp(self.since),
            "until": format_timestamp(self.until),
            "subjects": self.subjects,
            "stages": [stage_count.to_dict() for stage_count in self.stages],
            "overall_conversion_rate": round(self.overall_conversion_rate, 4),
        }


@dataclass(frozen=True)
class JobEventStats:
    """Raw lifecycle event counts for one job."""

    job_id: str
    total_views: int = 0
    unique_viewers: int = 0
    nudges_shown: int = 0
    referrals_started: int = 0
    referrals_submitted: int = 0
    messages_copied: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "total_views": self.total_views,
            "unique_viewers": self.unique_viewers,
            "nudges_shown": self.nudges_shown,
            "referrals_started": self.referrals_started,
            "referrals_submitted": self.referrals_submitted,
            "messages_copied": self.messages_copied,
        }
