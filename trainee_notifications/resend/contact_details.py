"""Resending failed emails when a trainee's contact address changes."""

from typing import List, Optional

from trainee_notifications.domain.models import NotificationRecord
from trainee_notifications.domain.notification_types import MessageType
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context
from trainee_notifications.notifications.dispatch import DispatchPolicy
from trainee_notifications.notifications.email_service import EmailService
from trainee_notifications.notifications.models import ResendError, TransportError

logger = get_logger(__name__, component="resend")


def needs_resend(record: NotificationRecord, new_address: str) -> bool:
    """A FAILED email needs resending when it went to a different (or no) address."""
    if record.channel != MessageType.EMAIL:
        return False
    stored = record.recipient.address
    return stored is None or stored.strip().lower() != new_address.strip().lower()


class ContactDetailsService:
    """Handles contact-details updates for a trainee."""

    def __init__(
        self,
        history,
        email_service: EmailService,
        dispatch: Optional[DispatchPolicy] = None,
        accounts=None,
    ):
        self.history = history
        self.email_service = email_service
        self.dispatch = dispatch
        self.accounts = accounts

    def update_contact(self, subject_id: str, new_address: Optional[str]) -> List[NotificationRecord]:
        """Resend the subject's failed emails to a new address.

        Stops at the first delivery failure; records already resent stay resent.

        Returns:
            The new SENT records

        Raises:
            ResendError: If a resend failed
        """
        with log_context(subject_id=subject_id):
            if not new_address or not new_address.strip():
                logger.info(
                    "Contact update without an email address ignored",
                    extra={"event": "resend.ignored"},
                )
                return []

            if self.accounts is not None:
                self.accounts.invalidate()

            candidates = [
                r for r in self.history.find_all_failed_for_subject(subject_id)
                if needs_resend(r, new_address)
            ]
            log_only = (
                self.dispatch.is_log_only(MessageType.EMAIL, subject_id) if self.dispatch else False
            )

            resent = []
            for record in candidates:
                try:
                    resent.append(self.email_service.resend(record, new_address, log_only=log_only))
                except TransportError as e:
                    logger.error(
                        f"Resend of {record.id} failed: {e}",
                        extra={
                            "event": "resend.failed",
                            "history_id": record.id,
                            "resent": len(resent),
                            "remaining": len(candidates) - len(resent),
                        },
                    )
                    raise ResendError(
                        f"Resend of {record.id} failed: {e}", subject_id, record.id
                    ) from e

            logger.info(
                f"Resent {len(resent)} failed email(s)",
                extra={"event": "resend.completed", "resent": len(resent)},
            )
            return resent
