"""Core domain models for notification history records.

This module defines the data structures used throughout the application:
- NotificationRecord: durable audit unit for every notification attempt
- Recipient: who a notification is addressed to and over which channel
- TemplateInfo: rendering inputs captured at send time
- ReferenceInfo: link back to the originating trainee entity
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from .notification_types import MessageType, NotificationType, ReferenceType


class NotificationStatus(str, Enum):
    """Lifecycle status of a notification record."""

    SCHEDULED = "SCHEDULED"
    UNREAD = "UNREAD"
    READ = "READ"
    SENT = "SENT"
    FAILED = "FAILED"


# Permitted status changes after creation. FAILED is terminal; a resend
# creates a new record rather than reviving the failed one.
ALLOWED_TRANSITIONS: Dict[NotificationStatus, frozenset] = {
    NotificationStatus.SCHEDULED: frozenset(
        {NotificationStatus.SENT, NotificationStatus.FAILED, NotificationStatus.UNREAD}
    ),
    NotificationStatus.SENT: frozenset({NotificationStatus.FAILED}),
    NotificationStatus.UNREAD: frozenset({NotificationStatus.READ}),
    NotificationStatus.READ: frozenset({NotificationStatus.UNREAD}),
    NotificationStatus.FAILED: frozenset(),
}


def can_transition(current: NotificationStatus, target: NotificationStatus) -> bool:
    """Check whether a record may move from one status to another."""
    return target in ALLOWED_TRANSITIONS[NotificationStatus(current)]


_VARIABLES_ADAPTER = TypeAdapter(Dict[str, Any])


def normalise_variables(variables: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Convert template variables to their JSON-compatible form.

    Dates and datetimes become ISO-8601 strings, so a freshly computed set of
    variables compares equal to one loaded back from storage.
    """
    if not variables:
        return {}
    return _VARIABLES_ADAPTER.dump_python(variables, mode="json")


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReferenceInfo(BaseModel):
    """Link from a notification to the trainee entity that caused it."""

    type: ReferenceType = Field(..., description="Kind of originating entity")
    id: str = Field(..., min_length=1, description="Identifier of the originating entity")

    model_config = {"frozen": True}


class Recipient(BaseModel):
    """Addressee of a notification."""

    subject_id: str = Field(..., min_length=1, description="Trainee identifier")
    channel: MessageType = Field(..., description="Delivery channel")
    address: Optional[str] = Field(None, description="Email address, EMAIL channel only")

    @model_validator(mode="after")
    def validate_address(self):
        """In-app recipients have no address."""
        if self.channel == MessageType.IN_APP and self.address is not None:
            raise ValueError("IN_APP recipients must not carry an address")
        return self


class TemplateInfo(BaseModel):
    """Template name, version and variables captured at send time."""

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    variables: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("variables", mode="before")
    @classmethod
    def coerce_variables(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Treat a missing variables map as empty."""
        return v or {}


class NotificationRecord(BaseModel):
    """A single notification attempt, as kept in the history store.

    The record is an immutable audit unit once created; only ``status``,
    ``status_detail`` and ``read_at`` change afterwards. ``sent_at`` is the
    dispatch time for email and the display time for in-app messages, which
    may lie in the future.
    """

    id: Optional[str] = Field(None, description="Assigned by the store on creation")
    reference: Optional[ReferenceInfo] = Field(None, description="Originating entity")
    type: NotificationType = Field(..., description="Notification type")
    recipient: Recipient
    template: TemplateInfo
    sent_at: datetime = Field(..., description="Dispatch or display time (UTC)")
    read_at: Optional[datetime] = Field(None, description="When an in-app message was read")
    status: NotificationStatus = Field(..., description="Lifecycle status")
    status_detail: Optional[str] = Field(None, description="Diagnostic text for FAILED")
    last_retry: Optional[datetime] = Field(None, description="When this record was last resent")

    @field_validator("sent_at", "read_at", "last_retry")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetimes are timezone-aware and in UTC."""
        return _ensure_utc(v)

    @model_validator(mode="after")
    def validate_channel_fields(self):
        """Keep channel specific fields consistent."""
        if self.read_at is not None and self.recipient.channel != MessageType.IN_APP:
            raise ValueError("read_at is only valid for IN_APP records")
        if self.status_detail is not None and self.status != NotificationStatus.FAILED:
            raise ValueError("status_detail is only valid for FAILED records")
        return self

    @property
    def subject_id(self) -> str:
        return self.recipient.subject_id

    @property
    def channel(self) -> MessageType:
        return self.recipient.channel

    def dedup_key(self) -> Tuple[Optional[str], Optional[str], str, str, str]:
        """Return the (reference type, reference id, type, subject, channel) key."""
        return (
            self.reference.type.value if self.reference else None,
            self.reference.id if self.reference else None,
            self.type.value,
            self.recipient.subject_id,
            self.recipient.channel.value,
        )

    def matches(
        self,
        reference: Optional[ReferenceInfo],
        notification_type: NotificationType,
        channel: MessageType,
    ) -> bool:
        """Check whether this record shares a dedup key with the given values."""
        return (
            self.reference == reference
            and self.type == notification_type
            and self.recipient.channel == channel
        )
