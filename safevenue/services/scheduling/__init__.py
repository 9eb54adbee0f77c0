"""Scheduling service module."""

from .scheduler_service import (
    JobCategory,
    JobStatus,
    ScheduledJob,
    SchedulerService,
    get_scheduler_service,
)

__all__ = [
    "JobCategory",
    "JobStatus",
    "ScheduledJob",
    "SchedulerService",
    "get_scheduler_service",
]
