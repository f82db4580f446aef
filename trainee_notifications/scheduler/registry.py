"""Scheduled job registry: one-shot notification jobs keyed by job id.

Job ids are ``<NOTIFICATION_TYPE>-<referenceId>``, so re-scheduling a
milestone for the same entity always replaces the previous job.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context
from trainee_notifications.notifications.models import (
    NotificationError,
    SchedulingError,
    SendOutcome,
)

logger = get_logger(__name__, component="scheduler")


def get_schedule_date(reference_date: date, offset_days: int, zone: ZoneInfo) -> datetime:
    """Return local midnight of ``reference_date - offset_days`` in ``zone``, as UTC.

    Arithmetic is on civil dates, so DST changes between the two dates do not
    shift the result off midnight.
    """
    civil = reference_date - timedelta(days=offset_days)
    return datetime.combine(civil, time.min, tzinfo=zone).astimezone(timezone.utc)


@dataclass(frozen=True)
class ScheduledJob:
    """View of a registered job."""

    job_id: str
    run_at: Optional[datetime]
    payload: Dict[str, Any]


class ScheduledJobRegistry:
    """Adds, replaces, removes and runs notification jobs.

    Args:
        scheduler: APScheduler instance the jobs live in
        executor: Object with ``execute(job_id, payload) -> SendOutcome``
        zone: Zone used for milestone date arithmetic
        misfire_grace_seconds: How late a job may still fire after downtime
        clock: Returns the current UTC time, for tests
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        executor,
        zone: ZoneInfo,
        misfire_grace_seconds: int = 3600,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.scheduler = scheduler
        self.executor = executor
        self.zone = zone
        self.misfire_grace_seconds = misfire_grace_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_schedule_date(self, reference_date: date, offset_days: int) -> datetime:
        return get_schedule_date(reference_date, offset_days, self.zone)

    def remove(self, job_id: str) -> bool:
        """Remove a job; removing an absent job is a no-op.

        Returns:
            True if a job was removed

        Raises:
            SchedulingError: If the scheduler fails for any other reason
        """
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        except Exception as e:
            logger.error(
                f"Failed to remove job {job_id}: {e}",
                exc_info=True,
                extra={"event": "scheduler.job.remove_failed", "job_id": job_id},
            )
            raise SchedulingError(f"Failed to remove job {job_id}: {e}", job_id) from e

        logger.info(
            f"Removed job {job_id}",
            extra={"event": "scheduler.job.removed", "job_id": job_id},
        )
        return True

    def schedule_at(self, job_id: str, payload: Dict[str, Any], when: datetime) -> datetime:
        """Replace any job with this id by one firing at ``when``.

        A time that has already passed fires as soon as possible.

        Returns:
            The effective run time (UTC)

        Raises:
            SchedulingError: If the job could not be removed or added
        """
        self.remove(job_id)

        now = self._clock()
        run_at = when.astimezone(timezone.utc) if when.tzinfo else when.replace(tzinfo=timezone.utc)
        if run_at <= now:
            run_at = now

        try:
            self.scheduler.add_job(
                self._fire,
                trigger=DateTrigger(run_date=run_at, timezone=timezone.utc),
                args=[job_id, dict(payload)],
                id=job_id,
                name=job_id,
                replace_existing=True,
                misfire_grace_time=self.misfire_grace_seconds,
            )
        except Exception as e:
            logger.error(
                f"Failed to schedule job {job_id}: {e}",
                exc_info=True,
                extra={"event": "scheduler.job.schedule_failed", "job_id": job_id},
            )
            raise SchedulingError(f"Failed to schedule job {job_id}: {e}", job_id) from e

        logger.info(
            f"Scheduled job {job_id} for {run_at.isoformat()}",
            extra={
                "event": "scheduler.job.scheduled",
                "job_id": job_id,
                "run_at": run_at.isoformat(),
                "clamped": run_at != when,
            },
        )
        return run_at

    def execute_now(self, job_id: str, payload: Dict[str, Any]) -> SendOutcome:
        """Run a job synchronously through the send pipeline."""
        logger.info(
            f"Executing job {job_id} now",
            extra={"event": "scheduler.job.execute_now", "job_id": job_id},
        )
        return self.executor.execute(job_id, payload)

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        job = self.scheduler.get_job(job_id)
        if job is None:
            return None

        run_at = getattr(job, "next_run_time", None)
        if run_at is None and isinstance(job.trigger, DateTrigger):
            run_at = job.trigger.run_date
        return ScheduledJob(job_id=job.id, run_at=run_at, payload=dict(job.args[1]))

    def _fire(self, job_id: str, payload: Dict[str, Any]) -> Dict[str, str]:
        """Scheduler entry point; reports the outcome as a status map."""
        with log_context(job_id=job_id):
            try:
                outcome = self.executor.execute(job_id, payload)
            except NotificationError as e:
                logger.error(
                    f"Job {job_id} failed: {e}",
                    exc_info=True,
                    extra={"event": "scheduler.job.failed", "error_type": type(e).__name__},
                )
                return {"status": f"failed: {e}"}

            result = outcome.to_result_map()
            logger.info(
                f"Job {job_id} finished: {result['status']}",
                extra={"event": "scheduler.job.finished", "status": outcome.status.value},
            )
            return result
