"""Notification delivery pipeline.

Public API:
    - NotificationJobExecutor: runs a scheduled or immediate job payload
    - EmailService / InAppService: channel senders that write history
    - UserAccountService: trainee -> account resolution
    - DispatchPolicy: dispatch-or-log switch per channel
    - TemplateRenderer: versioned Jinja2 templates
    - JobPayload, SendOutcome and the notification exceptions
"""

from .accounts import UserAccountService
from .dispatch import DispatchPolicy
from .email_service import EmailService, localise_variables
from .executor import NotificationJobExecutor
from .in_app import InAppService
from .models import (
    DeliveryError,
    MigrationIncompleteError,
    MultipleRecipientsError,
    NotificationError,
    NotificationValidationError,
    RecipientLookupError,
    RecipientNotFoundError,
    ResendError,
    SchedulingError,
    SendOutcome,
    SendStatus,
    SMTPDeliveryError,
    TemplateRenderError,
    TransportError,
)
from .payloads import JobPayload, build_job_id, outbox_job_id
from .smtp_client import SMTPClient
from .templates import RenderedMessage, TemplateRenderer

__all__ = [
    "NotificationJobExecutor",
    "EmailService",
    "InAppService",
    "UserAccountService",
    "DispatchPolicy",
    "TemplateRenderer",
    "RenderedMessage",
    "SMTPClient",
    "JobPayload",
    "build_job_id",
    "outbox_job_id",
    "localise_variables",
    "SendOutcome",
    "SendStatus",
    "NotificationError",
    "NotificationValidationError",
    "MultipleRecipientsError",
    "RecipientLookupError",
    "RecipientNotFoundError",
    "TransportError",
    "TemplateRenderError",
    "SMTPDeliveryError",
    "SchedulingError",
    "DeliveryError",
    "ResendError",
    "MigrationIncompleteError",
]
