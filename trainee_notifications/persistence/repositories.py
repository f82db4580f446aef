"""Data access layer for notification history.

HistoryRepository works inside a caller-provided session and returns
NotificationRecord domain models rather than ORM rows.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trainee_notifications.domain.models import (
    NotificationRecord,
    NotificationStatus,
    can_transition,
)
from trainee_notifications.domain.notification_types import MessageType, ReferenceType

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import NotificationHistoryModel, format_datetime

logger = logging.getLogger(__name__)

_History = NotificationHistoryModel


class HistoryRepository:
    """Repository for notification history records."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def save(self, record: NotificationRecord) -> NotificationRecord:
        """Insert a record, or replace the stored row with the same id.

        Returns:
            The persisted record, with its id assigned

        Raises:
            DataIntegrityError: On constraint violation
            PersistenceError: If database error occurs
        """
        try:
            model = _History.from_domain(record)
            existing = self.session.get(_History, model.id) if record.id else None

            if existing is None:
                self.session.add(model)
                self.session.flush()
                return model.to_domain()

            for column in _History.__table__.columns.keys():
                setattr(existing, column, getattr(model, column))
            self.session.flush()
            return existing.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error saving history {record.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to save history due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving history {record.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save history: {e}") from e

    def get_by_id(self, history_id: str) -> Optional[NotificationRecord]:
        """Retrieve a record by id, or None if absent.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(_History, history_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving history {history_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve history: {e}") from e

    def get_for_subject(self, history_id: str, subject_id: str) -> Optional[NotificationRecord]:
        """Retrieve a record by id only if it belongs to the subject."""
        record = self.get_by_id(history_id)
        if record is None or record.subject_id != subject_id:
            return None
        return record

    def find_all_for_subject(self, subject_id: str) -> List[NotificationRecord]:
        """All records for a subject, newest first."""
        return self._find(
            select(_History)
            .where(_History.recipient_id == subject_id)
            .order_by(_History.sent_at.desc()),
            f"subject {subject_id}",
        )

    def find_all_failed_for_subject(self, subject_id: str) -> List[NotificationRecord]:
        """FAILED records for a subject, newest first."""
        return self._find(
            select(_History)
            .where(
                _History.recipient_id == subject_id,
                _History.status == NotificationStatus.FAILED.value,
            )
            .order_by(_History.sent_at.desc()),
            f"failed for subject {subject_id}",
        )

    def find_for_reference(
        self, subject_id: str, reference_type: ReferenceType, reference_id: str
    ) -> List[NotificationRecord]:
        """All records, any type or status, a subject holds for one entity."""
        return self._find(
            select(_History)
            .where(
                _History.recipient_id == subject_id,
                _History.reference_type == ReferenceType(reference_type).value,
                _History.reference_id == reference_id,
            )
            .order_by(_History.sent_at.desc()),
            f"reference {reference_type}/{reference_id}",
        )

    def find_scheduled_for_reference(
        self,
        subject_id: str,
        reference_type: ReferenceType,
        reference_id: str,
        channel: Optional[MessageType] = None,
    ) -> List[NotificationRecord]:
        """SCHEDULED records a subject holds for one entity, optionally for one channel."""
        stmt = select(_History).where(
            _History.recipient_id == subject_id,
            _History.reference_type == ReferenceType(reference_type).value,
            _History.reference_id == reference_id,
            _History.status == NotificationStatus.SCHEDULED.value,
        )
        if channel is not None:
            stmt = stmt.where(_History.recipient_channel == MessageType(channel).value)
        return self._find(stmt.order_by(_History.sent_at), f"scheduled for {reference_id}")

    def find_all_scheduled_in_app(
        self, subject_id: str, reference_type: ReferenceType, reference_id: str
    ) -> List[NotificationRecord]:
        """SCHEDULED in-app records a subject holds for one entity."""
        return self.find_scheduled_for_reference(
            subject_id, reference_type, reference_id, MessageType.IN_APP
        )

    def find_overdue_ids(self, cutoff: datetime) -> List[str]:
        """Ids of SCHEDULED email records whose send time is at or before ``cutoff``."""
        try:
            stmt = (
                select(_History.id)
                .where(
                    _History.status == NotificationStatus.SCHEDULED.value,
                    _History.recipient_channel == MessageType.EMAIL.value,
                    _History.sent_at <= format_datetime(cutoff),
                )
                .order_by(_History.id)
            )
            return list(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error finding overdue notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to find overdue notifications: {e}") from e

    def find_failed_without_retry(
        self, channel: MessageType = MessageType.EMAIL
    ) -> List[NotificationRecord]:
        """FAILED records of a channel that have never been resent, oldest first."""
        return self._find(
            select(_History)
            .where(
                _History.status == NotificationStatus.FAILED.value,
                _History.recipient_channel == MessageType(channel).value,
                _History.last_retry.is_(None),
            )
            .order_by(_History.sent_at),
            "failed without retry",
        )

    def delete_for_subject(self, history_id: str, subject_id: str) -> bool:
        """Delete a record if it belongs to the subject.

        Returns:
            True if a row was deleted
        """
        try:
            result = self.session.execute(
                delete(_History).where(
                    _History.id == history_id, _History.recipient_id == subject_id
                )
            )
            self.session.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting history {history_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete history: {e}") from e

    def update_status(
        self, history_id: str, status: NotificationStatus, detail: Optional[str] = None
    ) -> NotificationRecord:
        """Move a record to a new status.

        The detail is kept only for FAILED; other statuses clear it.

        Raises:
            RecordNotFoundError: If the record does not exist
            DataIntegrityError: If the transition is not allowed
            PersistenceError: If database error occurs
        """
        status = NotificationStatus(status)
        try:
            model = self.session.get(_History, history_id)
            if model is None:
                raise RecordNotFoundError(f"History {history_id} not found")

            current = NotificationStatus(model.status)
            if current != status and not can_transition(current, status):
                raise DataIntegrityError(
                    f"History {history_id} cannot move from {current.value} to {status.value}"
                )

            model.status = status.value
            model.status_detail = detail if status == NotificationStatus.FAILED else None
            self.session.flush()
            return model.to_domain()

        except (RecordNotFoundError, DataIntegrityError):
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating status of history {history_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update history status: {e}") from e

    def mark_due_in_app_displayed(self, now: datetime) -> int:
        """Flip SCHEDULED in-app records whose display time has arrived to UNREAD.

        Returns:
            Number of records updated
        """
        try:
            result = self.session.execute(
                update(_History)
                .where(
                    _History.status == NotificationStatus.SCHEDULED.value,
                    _History.recipient_channel == MessageType.IN_APP.value,
                    _History.sent_at <= format_datetime(now),
                )
                .values(status=NotificationStatus.UNREAD.value)
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error displaying due in-app notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to display due in-app notifications: {e}") from e

    def mark_read(self, history_id: str, subject_id: str, read_at: datetime) -> NotificationRecord:
        """Mark an in-app record as READ.

        Raises:
            RecordNotFoundError: If the subject has no such record
            DataIntegrityError: If the record is not an UNREAD in-app record
        """
        return self._set_read_state(history_id, subject_id, NotificationStatus.READ, read_at)

    def mark_unread(self, history_id: str, subject_id: str) -> NotificationRecord:
        """Return a READ in-app record to UNREAD, clearing its read time."""
        return self._set_read_state(history_id, subject_id, NotificationStatus.UNREAD, None)

    def _set_read_state(
        self,
        history_id: str,
        subject_id: str,
        status: NotificationStatus,
        read_at: Optional[datetime],
    ) -> NotificationRecord:
        try:
            model = self.session.get(_History, history_id)
            if model is None or model.recipient_id != subject_id:
                raise RecordNotFoundError(f"History {history_id} not found for {subject_id}")

            if model.recipient_channel != MessageType.IN_APP.value:
                raise DataIntegrityError(f"History {history_id} is not an in-app notification")

            current = NotificationStatus(model.status)
            if current != status and not can_transition(current, status):
                raise DataIntegrityError(
                    f"History {history_id} cannot move from {current.value} to {status.value}"
                )

            model.status = status.value
            model.read_at = format_datetime(read_at)
            self.session.flush()
            return model.to_domain()

        except (RecordNotFoundError, DataIntegrityError):
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating read state of history {history_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update read state: {e}") from e

    def _find(self, stmt, description: str) -> List[NotificationRecord]:
        try:
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving history ({description}): {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve history: {e}") from e
