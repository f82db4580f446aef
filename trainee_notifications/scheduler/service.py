"""Scheduler service: owns the APScheduler instance and the periodic jobs."""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from trainee_notifications.logging import get_logger

logger = get_logger(__name__, component="scheduler")


def build_scheduler(misfire_grace_seconds: int = 3600) -> BackgroundScheduler:
    """Create the background scheduler shared by periodic and milestone jobs."""
    return BackgroundScheduler(
        job_defaults={
            "max_instances": 1,  # Prevent overlapping runs
            "coalesce": True,
            "misfire_grace_time": misfire_grace_seconds,
        },
        timezone=timezone.utc,
    )


class SchedulerService:
    """
    Runs periodic maintenance jobs (overdue sweep, outbox consumer) and hosts
    the one-shot milestone jobs added through the ScheduledJobRegistry.

    Uses BackgroundScheduler so the main thread stays free to handle signals
    and coordinate shutdown.
    """

    def __init__(
        self,
        scheduler: Optional[BackgroundScheduler] = None,
        shutdown_event: Optional[threading.Event] = None,
    ):
        self.scheduler = scheduler or build_scheduler()
        self.shutdown_event = shutdown_event
        self._periodic: Dict[str, Callable[[], object]] = {}

    def add_periodic(
        self,
        job_id: str,
        name: str,
        func: Callable[[], object],
        interval_seconds: int,
        run_immediately: bool = True,
    ) -> None:
        """Register a job that repeats every ``interval_seconds``."""
        next_run = datetime.now(timezone.utc) if run_immediately else None
        kwargs = {"next_run_time": next_run} if next_run else {}

        self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=interval_seconds, timezone=timezone.utc),
            id=job_id,
            name=name,
            replace_existing=True,
            misfire_grace_time=interval_seconds,
            **kwargs,
        )
        self._periodic[job_id] = func

        logger.info(
            f"Periodic job {job_id} registered every {interval_seconds} seconds",
            extra={
                "event": "scheduler.periodic.registered",
                "job_id": job_id,
                "interval_seconds": interval_seconds,
            },
        )

    def start(self) -> None:
        self.scheduler.start()
        logger.info(
            f"Scheduler started with {len(self._periodic)} periodic job(s)",
            extra={"event": "scheduler.started", "periodic_jobs": sorted(self._periodic)},
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self, job_id: str):
        """Run a registered periodic job synchronously in the current thread."""
        func = self._periodic.get(job_id)
        if func is None:
            raise KeyError(f"No periodic job registered as '{job_id}'")

        logger.info(
            f"Triggering immediate run of {job_id}",
            extra={"event": "scheduler.trigger_now", "job_id": job_id},
        )
        return func()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        """
        Get the next run time of a job.

        Returns:
            Next run time, or None if the job is unknown or not yet scheduled
        """
        job = self.scheduler.get_job(job_id)
        return getattr(job, "next_run_time", None) if job else None
