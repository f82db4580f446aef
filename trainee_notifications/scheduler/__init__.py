"""Job scheduling: periodic maintenance jobs and one-shot notification jobs."""

from .registry import ScheduledJob, ScheduledJobRegistry, get_schedule_date
from .service import SchedulerService, build_scheduler

__all__ = [
    "SchedulerService",
    "build_scheduler",
    "ScheduledJobRegistry",
    "ScheduledJob",
    "get_schedule_date",
]
