"""Scheduling module for the periodic retention purge."""

from .service import PURGE_JOB_ID, PurgeResult, RetentionPurgeJob, SchedulerService

__all__ = [
    "SchedulerService",
    "RetentionPurgeJob",
    "PurgeResult",
    "PURGE_JOB_ID",
]
