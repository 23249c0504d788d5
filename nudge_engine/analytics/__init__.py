"""Lifecycle events and funnel analytics."""

from .events import EventRecorder
from .funnel import FunnelAggregator, build_stage_counts, stage_for_event, stage_for_interaction
from .models import FUNNEL_STAGES, FunnelSnapshot, FunnelStage, JobEventStats, StageCount

__all__ = [
    "EventRecorder",
    "FunnelAggregator",
    "build_stage_counts",
    "stage_for_event",
    "stage_for_interaction",
    "FUNNEL_STAGES",
    "FunnelSnapshot",
    "FunnelStage",
    "JobEventStats",
    "StageCount",
]
