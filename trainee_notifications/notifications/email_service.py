"""Email delivery: render, send with retry/backoff, and record history."""

import re
import time
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from trainee_notifications.config.environment import EnvironmentConfig
from trainee_notifications.config.models import EmailConfig
from trainee_notifications.domain.models import (
    NotificationRecord,
    NotificationStatus,
    Recipient,
    ReferenceInfo,
    TemplateInfo,
    normalise_variables,
)
from trainee_notifications.domain.notification_types import MessageType, NotificationType
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context

from .accounts import UserAccountService
from .models import SMTPDeliveryError, TransportError
from .smtp_client import SMTPClient, build_sender_address, normalise_address
from .templates import TemplateRenderer

logger = get_logger(__name__, component="email")

_ISO_INSTANT = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})$")


def localise_variables(variables: Dict[str, Any], zone: ZoneInfo) -> Dict[str, Any]:
    """Convert instants (datetimes or ISO strings with an offset) into ``zone``.

    Plain dates and other values pass through untouched.
    """
    localised = {}
    for key, value in variables.items():
        if isinstance(value, str) and _ISO_INSTANT.match(value):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(zone)
        localised[key] = value
    return localised


class EmailService:
    """Sends templated emails and writes the matching history records.

    Args:
        smtp_client: Transport
        renderer: Template renderer
        history: HistoryStore the outcome is written to
        accounts: Recipient resolution for subject-addressed sends
        email_config: Sender name and retry settings
        env_config: Sender address and app domain
        zone: Zone that datetime variables are shown in
        sleep: Delay function used between retries
    """

    def __init__(
        self,
        smtp_client: SMTPClient,
        renderer: TemplateRenderer,
        history,
        accounts: Optional[UserAccountService],
        email_config: EmailConfig,
        env_config: EnvironmentConfig,
        zone: ZoneInfo,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.smtp_client = smtp_client
        self.renderer = renderer
        self.history = history
        self.accounts = accounts
        self.email_config = email_config
        self.env_config = env_config
        self.zone = zone
        self._sleep = sleep

    def send(
        self,
        address: str,
        subject_id: str,
        notification_type: NotificationType,
        template_version: str,
        variables: Dict[str, Any],
        reference: Optional[ReferenceInfo] = None,
        log_only: bool = False,
        history_id: Optional[str] = None,
    ) -> NotificationRecord:
        """Send an email to a known address.

        The outcome is written to history: a new record, or the SCHEDULED
        record ``history_id`` moved to SENT or FAILED.

        Raises:
            TransportError: If rendering or delivery failed (after recording FAILED)
        """
        template = TemplateInfo(
            name=NotificationType(notification_type).template_name,
            version=template_version,
            variables=variables,
        )
        return self._send(
            address, subject_id, NotificationType(notification_type), template,
            reference=reference, log_only=log_only, history_id=history_id,
        )

    def send_to_existing_subject(
        self,
        subject_id: str,
        notification_type: NotificationType,
        template_version: str,
        variables: Dict[str, Any],
        reference: Optional[ReferenceInfo] = None,
        log_only: bool = False,
        history_id: Optional[str] = None,
    ) -> NotificationRecord:
        """Resolve the trainee's account and send to its address.

        Raises:
            RecipientNotFoundError: If no account or address exists
            MultipleRecipientsError: If several accounts are linked
            TransportError: If rendering or delivery failed
        """
        details = self._accounts().resolve(subject_id)

        enriched = dict(variables)
        enriched.setdefault("name", details.family_name)
        enriched.setdefault("familyName", details.family_name)
        enriched.setdefault("givenName", details.given_name)

        return self.send(
            details.email, subject_id, notification_type, template_version, enriched,
            reference=reference, log_only=log_only, history_id=history_id,
        )

    def resend(
        self,
        record: NotificationRecord,
        address: Optional[str] = None,
        log_only: bool = False,
    ) -> NotificationRecord:
        """Resend a failed email, superseding the old record.

        A new SENT record with ``last_retry`` set replaces ``record``, which is
        deleted only after delivery succeeded. With no address the trainee's
        account is resolved again.

        Raises:
            TransportError: If delivery failed; nothing is written
            RecipientNotFoundError: If no address is available
        """
        if address is None:
            address = self._accounts().resolve(record.subject_id).email

        with log_context(history_id=record.id):
            resent = self._send(
                address,
                record.subject_id,
                record.type,
                record.template,
                reference=record.reference,
                log_only=log_only,
                last_retry=datetime.now(timezone.utc),
                record_failures=False,
            )
            self.history.delete_for_subject(record.id, record.subject_id)

        logger.info(
            f"Resent {record.type.value} as {resent.id}",
            extra={
                "event": "email.resent",
                "previous_history_id": record.id,
                "history_id": resent.id,
            },
        )
        return resent

    def _accounts(self) -> UserAccountService:
        if self.accounts is None:
            raise RuntimeError("EmailService was created without an account service")
        return self.accounts

    def _send(
        self,
        address: str,
        subject_id: str,
        notification_type: NotificationType,
        template: TemplateInfo,
        reference: Optional[ReferenceInfo] = None,
        log_only: bool = False,
        history_id: Optional[str] = None,
        last_retry: Optional[datetime] = None,
        record_failures: bool = True,
    ) -> NotificationRecord:
        context = localise_variables(dict(template.variables), self.zone)
        context.setdefault("domain", self.env_config.app_domain)

        def record(status: NotificationStatus, detail: Optional[str] = None) -> NotificationRecord:
            return self.history.save(
                NotificationRecord(
                    id=history_id,
                    reference=reference,
                    type=notification_type,
                    recipient=Recipient(
                        subject_id=subject_id, channel=MessageType.EMAIL, address=address
                    ),
                    template=TemplateInfo(
                        name=template.name,
                        version=template.version,
                        variables=normalise_variables(context),
                    ),
                    sent_at=datetime.now(timezone.utc),
                    status=status,
                    status_detail=detail,
                    last_retry=last_retry,
                )
            )

        with log_context(notification_type=notification_type.value, subject_id=subject_id):
            try:
                address = normalise_address(address)
                rendered = self.renderer.render(
                    MessageType.EMAIL, template.name, template.version, context
                )

                message = EmailMessage()
                message["Subject"] = rendered.subject
                message["From"] = build_sender_address(self.env_config, self.email_config.sender_name)
                message["To"] = address
                message.set_content(rendered.body, subtype="html")

                if log_only:
                    logger.info(
                        f"Email {notification_type.value} logged, not sent",
                        extra={"event": "email.logged_only", "template": template.name},
                    )
                else:
                    self._deliver(message)

            except (TransportError, ValueError) as e:
                error = e if isinstance(e, TransportError) else TransportError(str(e))
                if record_failures:
                    failed = record(NotificationStatus.FAILED, str(e))
                    logger.error(
                        f"Email {notification_type.value} failed: {e}",
                        extra={"event": "email.failed", "history_id": failed.id},
                    )
                if error is e:
                    raise
                raise error from e

            sent = record(NotificationStatus.SENT)
            logger.info(
                f"Email {notification_type.value} sent",
                extra={"event": "email.sent", "history_id": sent.id, "log_only": log_only},
            )
            return sent

    def _deliver(self, message: EmailMessage) -> None:
        """Send with exponential backoff between attempts."""
        max_attempts = self.email_config.max_retries + 1

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = min(
                    self.email_config.retry_initial_delay
                    * (self.email_config.retry_backoff_multiplier ** (attempt - 2)),
                    60.0,
                )
                logger.warning(
                    f"Retrying delivery (attempt {attempt}/{max_attempts}) after {delay:.1f}s delay",
                    extra={"event": "email.send.attempt", "attempt": attempt},
                )
                self._sleep(delay)

            try:
                self.smtp_client.send(message)
                return
            except SMTPDeliveryError as e:
                if attempt == max_attempts:
                    logger.error(
                        f"SMTP delivery failed after {max_attempts} attempts: {e}",
                        extra={
                            "event": "email.send.failure",
                            "attempts": max_attempts,
                            "retry_remaining": False,
                        },
                    )
                    raise
                logger.warning(
                    f"SMTP delivery failed (attempt {attempt}/{max_attempts}): {e}",
                    extra={"event": "email.send.failure", "attempt": attempt, "retry_remaining": True},
                )
