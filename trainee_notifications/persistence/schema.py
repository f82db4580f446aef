"""Database schema definition and ORM models.

Defines the ``notification_history`` table and the conversions between its
rows and NotificationRecord domain models. Timestamps are stored as ISO 8601
UTC strings and template variables as JSON text.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from trainee_notifications.domain.models import (
    NotificationRecord,
    Recipient,
    ReferenceInfo,
    TemplateInfo,
    normalise_variables,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class NotificationHistoryModel(Base):
    """ORM model for the notification_history table."""

    __tablename__ = "notification_history"

    id = Column(String(32), primary_key=True, nullable=False)

    # Originating entity, absent for ad-hoc notifications
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(String(255), nullable=True)

    notification_type = Column(String(100), nullable=False)

    recipient_id = Column(String(255), nullable=False)
    recipient_channel = Column(String(20), nullable=False)
    recipient_address = Column(String(320), nullable=True)

    template_name = Column(String(100), nullable=False)
    template_version = Column(String(50), nullable=False)
    template_variables = Column(Text, nullable=False, default="{}")

    sent_at = Column(String(50), nullable=False)
    read_at = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False)
    status_detail = Column(Text, nullable=True)
    last_retry = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_history_recipient", "recipient_id"),
        Index("idx_history_reference", "reference_type", "reference_id"),
        Index("idx_history_status_sent", "status", "sent_at"),
    )

    def to_domain(self) -> NotificationRecord:
        """Convert the row to a domain model."""
        reference = None
        if self.reference_type and self.reference_id:
            reference = ReferenceInfo(type=self.reference_type, id=self.reference_id)

        return NotificationRecord(
            id=self.id,
            reference=reference,
            type=self.notification_type,
            recipient=Recipient(
                subject_id=self.recipient_id,
                channel=self.recipient_channel,
                address=self.recipient_address,
            ),
            template=TemplateInfo(
                name=self.template_name,
                version=self.template_version,
                variables=json.loads(self.template_variables or "{}"),
            ),
            sent_at=_parse_datetime(self.sent_at),
            read_at=_parse_datetime(self.read_at),
            status=self.status,
            status_detail=self.status_detail,
            last_retry=_parse_datetime(self.last_retry),
        )

    @classmethod
    def from_domain(cls, record: NotificationRecord) -> "NotificationHistoryModel":
        """Create a row from a domain model, assigning an id if it has none."""
        return cls(
            id=record.id or uuid.uuid4().hex,
            reference_type=record.reference.type.value if record.reference else None,
            reference_id=record.reference.id if record.reference else None,
            notification_type=record.type.value,
            recipient_id=record.recipient.subject_id,
            recipient_channel=record.recipient.channel.value,
            recipient_address=record.recipient.address,
            template_name=record.template.name,
            template_version=record.template.version,
            template_variables=json.dumps(
                normalise_variables(record.template.variables), sort_keys=True
            ),
            sent_at=format_datetime(record.sent_at),
            read_at=format_datetime(record.read_at),
            status=record.status.value,
            status_detail=record.status_detail,
            last_retry=format_datetime(record.last_retry),
        )


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as the stored ISO 8601 UTC string.

    The fixed-width format keeps string comparison in queries chronological.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime(_DATETIME_FORMAT)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    if not dt_str:
        return None

    return datetime.strptime(dt_str, _DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create tables and indexes if they don't exist (idempotent)."""
    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
