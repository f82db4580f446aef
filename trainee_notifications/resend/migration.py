"""One-shot migration of FAILED emails created before resends were tracked."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from trainee_notifications.domain.models import NotificationRecord, NotificationStatus, Recipient
from trainee_notifications.domain.notification_types import Anchor, MessageType
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context
from trainee_notifications.notifications.email_service import EmailService
from trainee_notifications.notifications.models import (
    MigrationIncompleteError,
    NotificationError,
)
from trainee_notifications.notifications.payloads import JobPayload, build_job_id
from trainee_notifications.persistence import PersistenceError
from trainee_notifications.scheduler.registry import ScheduledJobRegistry

logger = get_logger(__name__, component="migration")

# Variable holding each anchor's date in stored template variables
ANCHOR_VARIABLES = {Anchor.START: "startDate", Anchor.END: "cctDate"}


@dataclass
class MigrationResult:
    resent: int = 0
    rescheduled: int = 0
    skipped: int = 0
    failed_ids: List[str] = field(default_factory=list)


class FailedNotificationMigration:
    """Resends or reschedules FAILED emails that have never been retried.

    A superseded row is deleted only after its replacement succeeded.
    """

    def __init__(
        self,
        history,
        email_service: EmailService,
        registry: ScheduledJobRegistry,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.history = history
        self.email_service = email_service
        self.registry = registry
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self) -> MigrationResult:
        """Migrate every candidate record.

        Raises:
            MigrationIncompleteError: After the sweep, if any record could not be migrated
        """
        result = MigrationResult()
        records = self.history.find_failed_without_retry(MessageType.EMAIL)

        logger.info(
            f"Migrating {len(records)} failed notification(s)",
            extra={"event": "migration.started", "candidates": len(records)},
        )

        for record in records:
            with log_context(history_id=record.id, notification_type=record.type.value):
                try:
                    if self._superseded(record):
                        self.history.delete_for_subject(record.id, record.subject_id)
                        logger.info(
                            f"Dropping {record.id}: already delivered or scheduled by a later pass",
                            extra={"event": "migration.superseded"},
                        )
                        result.skipped += 1
                        continue

                    if record.type.behaviour.is_milestone and record.reference is not None:
                        self._reschedule(record)
                        result.rescheduled += 1
                    else:
                        self.email_service.resend(record, record.recipient.address)
                        result.resent += 1
                except PersistenceError as e:
                    logger.warning(
                        f"Skipping {record.id}: {e}",
                        exc_info=True,
                        extra={"event": "migration.skipped"},
                    )
                    result.skipped += 1
                except (NotificationError, KeyError, ValueError) as e:
                    logger.error(
                        f"Could not migrate {record.id}: {e}",
                        extra={"event": "migration.failed", "error_type": type(e).__name__},
                    )
                    result.failed_ids.append(record.id)

        logger.info(
            f"Migration finished: {result.resent} resent, {result.rescheduled} rescheduled, "
            f"{result.skipped} skipped, {len(result.failed_ids)} failed",
            extra={
                "event": "migration.completed",
                "resent": result.resent,
                "rescheduled": result.rescheduled,
                "skipped": result.skipped,
                "failed": len(result.failed_ids),
            },
        )

        if result.failed_ids:
            raise MigrationIncompleteError(result.failed_ids)
        return result

    def _superseded(self, record: NotificationRecord) -> bool:
        """Check whether a non-FAILED record with the same dedup key exists."""
        if record.reference is None:
            return False
        peers = self.history.find_for_reference(
            record.subject_id, record.reference.type, record.reference.id
        )
        return any(
            peer.id != record.id
            and peer.status != NotificationStatus.FAILED
            and peer.dedup_key() == record.dedup_key()
            for peer in peers
        )

    def _reschedule(self, record: NotificationRecord) -> None:
        behaviour = record.type.behaviour
        anchor_value = record.template.variables[ANCHOR_VARIABLES[behaviour.anchor]]
        anchor_date = date.fromisoformat(str(anchor_value)[:10])

        now = self._clock()
        fire_at = max(self.registry.get_schedule_date(anchor_date, behaviour.days_before), now)

        replacement = self.history.save(
            record.model_copy(
                update={
                    "id": None,
                    "recipient": Recipient(subject_id=record.subject_id, channel=MessageType.EMAIL),
                    "sent_at": fire_at,
                    "status": NotificationStatus.SCHEDULED,
                    "status_detail": None,
                    "last_retry": now,
                }
            )
        )

        try:
            self.registry.schedule_at(
                build_job_id(record.type, record.reference.id),
                JobPayload.from_record(replacement).to_job_data(),
                fire_at,
            )
        except NotificationError:
            self.history.delete_for_subject(replacement.id, replacement.subject_id)
            raise

        self.history.delete_for_subject(record.id, record.subject_id)
        logger.info(
            f"Rescheduled {record.id} as {replacement.id} for {fire_at.isoformat()}",
            extra={"event": "migration.rescheduled", "new_history_id": replacement.id},
        )
