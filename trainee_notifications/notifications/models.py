"""Result types and exceptions for the notification pipeline.

Raised errors are reserved for genuinely exceptional conditions. Outcomes
that callers are expected to branch on, such as a scheduled record that has
already been handled, are modelled as ``SendOutcome`` values instead.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationValidationError(NotificationError):
    """Raised for missing subject ids, missing or unknown types, or ambiguous recipients.

    Surfaced to the caller immediately; never retried and never recorded in history.
    """

    pass


class MultipleRecipientsError(NotificationValidationError):
    """Raised when a subject id resolves to more than one account."""

    def __init__(self, subject_id: str, account_ids) -> None:
        super().__init__(
            f"Subject {subject_id} resolved to {len(account_ids)} accounts"
        )
        self.subject_id = subject_id
        self.account_ids = set(account_ids)


class RecipientNotFoundError(NotificationError):
    """Raised when no account, or no address, exists for a subject."""

    def __init__(self, subject_id: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"No account found for subject {subject_id}")
        self.subject_id = subject_id


class TransportError(NotificationError):
    """Raised when rendering, sending or channel hand-off fails."""

    pass


class RecipientLookupError(TransportError):
    """Raised when the account directory could not be reached or read."""

    def __init__(self, subject_id: str, message: str) -> None:
        super().__init__(message)
        self.subject_id = subject_id


class TemplateRenderError(TransportError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class SMTPDeliveryError(TransportError):
    """Raised when SMTP delivery fails."""

    pass


class SchedulingError(NotificationError):
    """Raised when the scheduler rejects adding or removing a job."""

    def __init__(self, message: str, job_id: str) -> None:
        super().__init__(message)
        self.job_id = job_id


class DeliveryError(NotificationError):
    """Raised when a scheduled outbox item could not be sent.

    The queue transport treats this as a signal to redeliver.
    """

    def __init__(self, message: str, history_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.history_id = history_id


class ResendError(NotificationError):
    """Raised when a contact-change resend did not complete."""

    def __init__(self, message: str, subject_id: str, history_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.subject_id = subject_id
        self.history_id = history_id


class MigrationIncompleteError(NotificationError):
    """Raised at the end of a migration sweep when some records were not migrated."""

    def __init__(self, failed_ids) -> None:
        failed_ids = list(failed_ids)
        super().__init__(f"{len(failed_ids)} notification(s) could not be migrated")
        self.failed_ids = failed_ids


class SendStatus(str, Enum):
    """Outcome kinds for a send attempt."""

    SUCCESS = "SUCCESS"
    ALREADY_HANDLED = "ALREADY_HANDLED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SendOutcome:
    """Result of running the notification pipeline for one job.

    Attributes:
        status: Success, already handled, or failed
        history_id: History record written or updated, if any
        reason: Failure reason, only for FAILED
        completed_at: When the outcome was produced (UTC)
    """

    status: SendStatus
    history_id: Optional[str] = None
    reason: Optional[str] = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success(cls, history_id: Optional[str] = None) -> "SendOutcome":
        return cls(SendStatus.SUCCESS, history_id=history_id)

    @classmethod
    def already_handled(cls, history_id: Optional[str] = None) -> "SendOutcome":
        return cls(SendStatus.ALREADY_HANDLED, history_id=history_id)

    @classmethod
    def failed(cls, reason: str, history_id: Optional[str] = None) -> "SendOutcome":
        return cls(SendStatus.FAILED, history_id=history_id, reason=reason)

    def is_success(self) -> bool:
        return self.status == SendStatus.SUCCESS

    def to_result_map(self) -> Dict[str, str]:
        """Render the outcome as the status map reported to the scheduler.

        Successful sends report ``"sent <timestamp>"``; anything else reports
        the outcome kind and reason.
        """
        if self.is_success():
            return {"status": f"sent {self.completed_at.isoformat()}"}
        if self.status == SendStatus.ALREADY_HANDLED:
            return {"status": "already handled"}
        return {"status": f"failed: {self.reason or 'unknown'}"}
