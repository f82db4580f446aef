"""Applies a DecisionSet to the history store and the job registry."""

from dataclasses import asdict, dataclass
from typing import Sequence

from trainee_notifications.config.models import AppConfig
from trainee_notifications.domain.entities import TraineeEntity
from trainee_notifications.domain.models import (
    NotificationRecord,
    NotificationStatus,
    Recipient,
    TemplateInfo,
)
from trainee_notifications.domain.notification_types import MessageType
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context
from trainee_notifications.notifications.dispatch import DispatchPolicy
from trainee_notifications.notifications.in_app import InAppService
from trainee_notifications.notifications.models import (
    NotificationValidationError,
    RecipientNotFoundError,
    SchedulingError,
)
from trainee_notifications.notifications.payloads import JobPayload
from trainee_notifications.scheduler.registry import ScheduledJobRegistry

from .models import Decision, DecisionSet, MilestoneDefinition

logger = get_logger(__name__, component="eligibility")


@dataclass
class ApplyResult:
    """Counts of what one apply() changed."""

    scheduled: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    deleted: int = 0


class DecisionApplier:
    """Turns decisions into SCHEDULED records, jobs and immediate sends.

    Registry errors propagate; failures of a single immediate send are logged
    and do not stop the remaining decisions.
    """

    def __init__(
        self,
        history,
        registry: ScheduledJobRegistry,
        in_app_service: InAppService,
        dispatch: DispatchPolicy,
        config: AppConfig,
    ):
        self.history = history
        self.registry = registry
        self.in_app_service = in_app_service
        self.dispatch = dispatch
        self.config = config

    def apply(self, entity: TraineeEntity, decisions: DecisionSet) -> ApplyResult:
        result = ApplyResult()

        with log_context(subject_id=entity.person_id, reference_id=entity.tis_id):
            # Cancellations and stale records go first so replacements never collide
            for job_id in decisions.to_cancel:
                if self.registry.remove(job_id):
                    result.cancelled += 1
            for record in decisions.stale_records:
                self.history.delete_for_subject(record.id, record.subject_id)
                result.deleted += 1

            for decision in decisions.to_schedule:
                with log_context(notification_type=decision.notification_type.value):
                    self._schedule(decision)
                    result.scheduled += 1

            for decision in decisions.to_send_now:
                with log_context(notification_type=decision.notification_type.value):
                    if self._send_now(decision):
                        result.sent += 1
                    else:
                        result.failed += 1

        logger.info(
            f"Applied decisions for {entity.reference_type.value} {entity.tis_id}",
            extra={"event": "eligibility.applied", **asdict(result)},
        )
        return result

    def cancel_all(
        self, entity: TraineeEntity, definitions: Sequence[MilestoneDefinition]
    ) -> ApplyResult:
        """Remove every milestone job and SCHEDULED record of a deleted entity."""
        result = ApplyResult()

        for definition in definitions:
            if not definition.immediate and self.registry.remove(definition.job_id(entity)):
                result.cancelled += 1

        for record in self.history.find_scheduled_for_reference(
            entity.person_id, entity.reference_type, entity.tis_id
        ):
            self.history.delete_for_subject(record.id, record.subject_id)
            result.deleted += 1

        logger.info(
            f"Cancelled notifications of deleted {entity.reference_type.value} {entity.tis_id}",
            extra={"event": "eligibility.entity_deleted", **asdict(result)},
        )
        return result

    def _version(self, decision: Decision) -> str:
        version = self.config.get_template_version(decision.notification_type, decision.channel)
        if not version:
            raise NotificationValidationError(
                f"No template version configured for {decision.notification_type.value}"
            )
        return version

    def _payload(self, decision: Decision, version: str, history_id=None) -> JobPayload:
        return JobPayload(
            subject_id=decision.subject_id,
            notification_type=decision.notification_type,
            reference_type=decision.reference.type,
            reference_id=decision.reference.id,
            template_version=version,
            history_id=history_id,
            variables=decision.variables,
        )

    def _schedule(self, decision: Decision) -> None:
        version = self._version(decision)

        if decision.channel == MessageType.IN_APP:
            self.in_app_service.create(
                decision.subject_id,
                decision.reference,
                decision.notification_type,
                version,
                decision.variables,
                log_only=self.dispatch.is_log_only(MessageType.IN_APP, decision.subject_id),
                display_at=decision.fire_at,
            )
            return

        record = self.history.save(
            NotificationRecord(
                reference=decision.reference,
                type=decision.notification_type,
                recipient=Recipient(subject_id=decision.subject_id, channel=MessageType.EMAIL),
                template=TemplateInfo(
                    name=decision.notification_type.template_name,
                    version=version,
                    variables=decision.variables,
                ),
                sent_at=decision.fire_at,
                status=NotificationStatus.SCHEDULED,
            )
        )

        try:
            self.registry.schedule_at(
                decision.job_id, self._payload(decision, version, record.id).to_job_data(),
                decision.fire_at,
            )
        except SchedulingError:
            # No job will ever pick the record up
            self.history.delete_for_subject(record.id, record.subject_id)
            raise

    def _send_now(self, decision: Decision) -> bool:
        try:
            version = self._version(decision)

            if decision.channel == MessageType.IN_APP:
                self.in_app_service.create(
                    decision.subject_id,
                    decision.reference,
                    decision.notification_type,
                    version,
                    decision.variables,
                    log_only=self.dispatch.is_log_only(MessageType.IN_APP, decision.subject_id),
                )
                return True

            outcome = self.registry.execute_now(
                decision.job_id, self._payload(decision, version).to_job_data()
            )
        except (NotificationValidationError, RecipientNotFoundError) as e:
            logger.error(
                f"Could not send {decision.notification_type.value}: {e}",
                extra={"event": "eligibility.send_failed", "error_type": type(e).__name__},
            )
            return False

        if not outcome.is_success():
            logger.error(
                f"Sending {decision.notification_type.value} failed: {outcome.reason}",
                extra={"event": "eligibility.send_failed", "status": outcome.status.value},
            )
            return False
        return True
