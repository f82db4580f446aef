"""History store facade.

Each operation runs in its own session and transaction. Records are never
cached between calls, so every dedup decision reads the current state.
"""

from datetime import datetime, timezone
from typing import List, Optional

from trainee_notifications.domain.models import NotificationRecord, NotificationStatus
from trainee_notifications.domain.notification_types import MessageType, ReferenceType
from trainee_notifications.logging import get_logger
from trainee_notifications.persistence import HistoryRepository, RecordNotFoundError, get_session

logger = get_logger(__name__, component="history")


class HistoryStore:
    """Owns persistence of NotificationRecords.

    Args:
        renderer: Optional TemplateRenderer used by rebuild_message()
    """

    def __init__(self, renderer=None):
        self.renderer = renderer

    def save(self, record: NotificationRecord) -> NotificationRecord:
        """Persist a record, returning it with its assigned id."""
        with get_session() as session:
            saved = HistoryRepository(session).save(record)

        logger.debug(
            "History record saved",
            extra={
                "event": "history.saved",
                "history_id": saved.id,
                "notification_type": saved.type.value,
                "status": saved.status.value,
            },
        )
        return saved

    def get(self, history_id: str) -> Optional[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).get_by_id(history_id)

    def get_for_subject(self, history_id: str, subject_id: str) -> Optional[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).get_for_subject(history_id, subject_id)

    def find_all_for_subject(self, subject_id: str) -> List[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).find_all_for_subject(subject_id)

    def find_all_failed_for_subject(self, subject_id: str) -> List[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).find_all_failed_for_subject(subject_id)

    def find_for_reference(
        self, subject_id: str, reference_type: ReferenceType, reference_id: str
    ) -> List[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).find_for_reference(
                subject_id, reference_type, reference_id
            )

    def find_scheduled_for_reference(
        self,
        subject_id: str,
        reference_type: ReferenceType,
        reference_id: str,
        channel: Optional[MessageType] = None,
    ) -> List[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).find_scheduled_for_reference(
                subject_id, reference_type, reference_id, channel
            )

    def find_all_scheduled_in_app(
        self, subject_id: str, reference_type: ReferenceType, reference_id: str
    ) -> List[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).find_all_scheduled_in_app(
                subject_id, reference_type, reference_id
            )

    def find_overdue_ids(self, cutoff: datetime) -> List[str]:
        with get_session() as session:
            return HistoryRepository(session).find_overdue_ids(cutoff)

    def find_failed_without_retry(
        self, channel: MessageType = MessageType.EMAIL
    ) -> List[NotificationRecord]:
        with get_session() as session:
            return HistoryRepository(session).find_failed_without_retry(channel)

    def delete_for_subject(self, history_id: str, subject_id: str) -> None:
        """Delete a subject's record; deleting an absent record is not an error."""
        with get_session() as session:
            deleted = HistoryRepository(session).delete_for_subject(history_id, subject_id)

        logger.info(
            "History record deleted" if deleted else "History record already absent",
            extra={
                "event": "history.deleted",
                "history_id": history_id,
                "subject_id": subject_id,
                "deleted": deleted,
            },
        )

    def update_status(
        self, history_id: str, status: NotificationStatus, detail: Optional[str] = None
    ) -> NotificationRecord:
        with get_session() as session:
            record = HistoryRepository(session).update_status(history_id, status, detail)

        logger.info(
            f"History {history_id} moved to {record.status.value}",
            extra={
                "event": "history.status.updated",
                "history_id": history_id,
                "status": record.status.value,
                "status_detail": record.status_detail,
            },
        )
        return record

    def mark_due_in_app_displayed(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        with get_session() as session:
            return HistoryRepository(session).mark_due_in_app_displayed(now)

    def mark_read(self, history_id: str, subject_id: str) -> NotificationRecord:
        with get_session() as session:
            return HistoryRepository(session).mark_read(
                history_id, subject_id, datetime.now(timezone.utc)
            )

    def mark_unread(self, history_id: str, subject_id: str) -> NotificationRecord:
        with get_session() as session:
            return HistoryRepository(session).mark_unread(history_id, subject_id)

    def rebuild_message(self, history_id: str, subject_id: Optional[str] = None):
        """Re-render a stored notification from its captured template inputs.

        Returns:
            RenderedMessage with subject and body

        Raises:
            RecordNotFoundError: If the record does not exist (for the subject)
            TemplateRenderError: If the stored template can no longer be rendered
        """
        if self.renderer is None:
            raise RuntimeError("HistoryStore was created without a template renderer")

        if subject_id is None:
            record = self.get(history_id)
        else:
            record = self.get_for_subject(history_id, subject_id)

        if record is None:
            raise RecordNotFoundError(f"History {history_id} not found")

        return self.renderer.render(
            record.channel,
            record.template.name,
            record.template.version,
            record.template.variables,
        )
