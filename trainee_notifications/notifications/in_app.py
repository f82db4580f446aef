"""In-app notifications: stored messages the trainee sees in the web app."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

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

logger = get_logger(__name__, component="in_app")


class InAppService:
    """Creates in-app notification records.

    A record with a display time in the future is SCHEDULED and becomes
    UNREAD once the overdue sweep passes that time. Log-only mode persists
    nothing.
    """

    def __init__(self, history, clock=None):
        self.history = history
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create(
        self,
        subject_id: str,
        reference: Optional[ReferenceInfo],
        notification_type: NotificationType,
        template_version: str,
        variables: Dict[str, Any],
        log_only: bool = False,
        display_at: Optional[datetime] = None,
    ) -> Optional[NotificationRecord]:
        """Create (or only log) an in-app notification.

        Returns:
            The stored record, or None in log-only mode
        """
        notification_type = NotificationType(notification_type)
        now = self._clock()
        display_at = display_at or now
        status = NotificationStatus.SCHEDULED if display_at > now else NotificationStatus.UNREAD

        if log_only:
            logger.info(
                f"In-app {notification_type.value} logged, not stored",
                extra={
                    "event": "in_app.logged_only",
                    "subject_id": subject_id,
                    "notification_type": notification_type.value,
                },
            )
            return None

        record = self.history.save(
            NotificationRecord(
                reference=reference,
                type=notification_type,
                recipient=Recipient(subject_id=subject_id, channel=MessageType.IN_APP),
                template=TemplateInfo(
                    name=notification_type.template_name,
                    version=template_version,
                    variables=normalise_variables(variables),
                ),
                sent_at=display_at,
                status=status,
            )
        )

        logger.info(
            f"In-app {notification_type.value} created as {status.value}",
            extra={
                "event": "in_app.created",
                "history_id": record.id,
                "subject_id": subject_id,
                "notification_type": notification_type.value,
                "status": status.value,
            },
        )
        return record
