"""Job payloads passed between the scheduler, the outbox and the send pipeline.

A payload is a plain dict while it sits in the scheduler, so it can be
stored by any job store. JobPayload validates it on the way out.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from trainee_notifications.domain.models import NotificationRecord, ReferenceInfo
from trainee_notifications.domain.notification_types import NotificationType, ReferenceType

from .models import NotificationValidationError


def build_job_id(notification_type: NotificationType, reference_id: str) -> str:
    """Job id for an entity milestone, e.g. ``PLACEMENT_UPDATED_WEEK_12-315``."""
    return f"{NotificationType(notification_type).value}-{reference_id}"


def outbox_job_id(history_id: str) -> str:
    return f"OUTBOX_{history_id}"


class JobPayload(BaseModel):
    """Validated job data."""

    subject_id: str = Field(..., alias="subjectId")
    notification_type: NotificationType = Field(..., alias="notificationType")
    reference_type: Optional[ReferenceType] = Field(None, alias="referenceType")
    reference_id: Optional[str] = Field(None, alias="referenceId")
    template_version: Optional[str] = Field(None, alias="templateVersion")
    history_id: Optional[str] = Field(None, alias="historyId")
    variables: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @field_validator("subject_id")
    @classmethod
    def require_subject(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("subject id must not be blank")
        return v.strip()

    @classmethod
    def from_job_data(cls, data: Optional[Dict[str, Any]]) -> "JobPayload":
        """Validate raw job data.

        Raises:
            NotificationValidationError: If the subject id or notification type
                is missing or the notification type is unknown
        """
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise NotificationValidationError(f"Invalid job payload: {problems}") from e

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "JobPayload":
        """Rebuild the payload of a stored SCHEDULED record."""
        return cls(
            subject_id=record.subject_id,
            notification_type=record.type,
            reference_type=record.reference.type if record.reference else None,
            reference_id=record.reference.id if record.reference else None,
            template_version=record.template.version,
            history_id=record.id,
            variables=dict(record.template.variables),
        )

    @property
    def reference(self) -> Optional[ReferenceInfo]:
        if self.reference_type is None or not self.reference_id:
            return None
        return ReferenceInfo(type=self.reference_type, id=self.reference_id)

    def to_job_data(self) -> Dict[str, Any]:
        """Serialise to the dict stored with the scheduler job."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
