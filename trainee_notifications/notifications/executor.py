"""Runs one notification job: the send pipeline behind scheduled and immediate jobs."""

from typing import Any, Dict, Optional

from trainee_notifications.config.models import AppConfig
from trainee_notifications.domain.models import NotificationStatus
from trainee_notifications.domain.notification_types import MessageType
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context

from .dispatch import DispatchPolicy
from .email_service import EmailService
from .in_app import InAppService
from .models import (
    NotificationValidationError,
    RecipientNotFoundError,
    SendOutcome,
    TransportError,
)
from .payloads import JobPayload

logger = get_logger(__name__, component="executor")


class NotificationJobExecutor:
    """Executes a job payload against the channel services.

    A payload that names a history record only proceeds while that record
    is still SCHEDULED; anything else was handled (or cancelled) already.
    """

    def __init__(
        self,
        history,
        email_service: EmailService,
        in_app_service: InAppService,
        dispatch: DispatchPolicy,
        config: AppConfig,
    ):
        self.history = history
        self.email_service = email_service
        self.in_app_service = in_app_service
        self.dispatch = dispatch
        self.config = config

    def execute(self, job_id: str, data: Optional[Dict[str, Any]]) -> SendOutcome:
        """Run a job.

        Returns:
            SendOutcome: SUCCESS, ALREADY_HANDLED, or FAILED on transport errors

        Raises:
            NotificationValidationError: If the payload is incomplete or ambiguous
            RecipientNotFoundError: If the trainee has no usable account
        """
        with log_context(job_id=job_id):
            payload = JobPayload.from_job_data(data)

            with log_context(
                subject_id=payload.subject_id,
                notification_type=payload.notification_type.value,
                history_id=payload.history_id,
            ):
                if payload.history_id:
                    record = self.history.get(payload.history_id)
                    if record is None or record.status != NotificationStatus.SCHEDULED:
                        logger.info(
                            "Scheduled notification already handled",
                            extra={
                                "event": "job.already_handled",
                                "status": record.status.value if record else None,
                            },
                        )
                        return SendOutcome.already_handled(payload.history_id)

                try:
                    return self._run(payload)
                except (NotificationValidationError, RecipientNotFoundError) as e:
                    logger.error(
                        f"Job {job_id} rejected: {e}",
                        extra={"event": "job.rejected", "error_type": type(e).__name__},
                    )
                    if payload.history_id:
                        self.history.update_status(
                            payload.history_id, NotificationStatus.FAILED, str(e)
                        )
                    raise

    def _run(self, payload: JobPayload) -> SendOutcome:
        channel = payload.notification_type.behaviour.channel
        version = payload.template_version or self.config.get_template_version(
            payload.notification_type
        )
        if not version:
            raise NotificationValidationError(
                f"No template version configured for {payload.notification_type.value}"
            )

        log_only = self.dispatch.is_log_only(channel, payload.subject_id)

        if channel == MessageType.IN_APP:
            if payload.history_id:
                self.history.update_status(payload.history_id, NotificationStatus.UNREAD)
                return SendOutcome.success(payload.history_id)
            record = self.in_app_service.create(
                payload.subject_id,
                payload.reference,
                payload.notification_type,
                version,
                payload.variables,
                log_only=log_only,
            )
            return SendOutcome.success(record.id if record else None)

        try:
            record = self.email_service.send_to_existing_subject(
                payload.subject_id,
                payload.notification_type,
                version,
                payload.variables,
                reference=payload.reference,
                log_only=log_only,
                history_id=payload.history_id,
            )
        except TransportError as e:
            return SendOutcome.failed(str(e), payload.history_id)

        return SendOutcome.success(record.id)
