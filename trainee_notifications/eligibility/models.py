"""Milestone definitions and the decisions the eligibility engine produces."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from trainee_notifications.domain.entities import TraineeEntity
from trainee_notifications.domain.models import NotificationRecord, ReferenceInfo
from trainee_notifications.domain.notification_types import MessageType, NotificationType

# Returns a reason when the entity is out of scope on the given day, else None
ExclusionPredicate = Callable[[TraineeEntity, date], Optional[str]]


@dataclass(frozen=True)
class MilestoneDefinition:
    """One notification an entity may receive.

    Attributes:
        notification_type: Type to send
        offset_days: Days before the anchor date; None for a direct
            (send now) notification
        anchor: Returns the entity's anchor date (start date, CCT date)
        variables: Builds template variables; may raise when external
            context cannot be resolved
        group: Milestones sharing a group form one reminder series
        exclusion: Scope predicate; definitions sharing a predicate share a scope
    """

    notification_type: NotificationType
    variables: Callable[[Any], Dict[str, Any]]
    offset_days: Optional[int] = None
    anchor: Optional[Callable[[Any], Optional[date]]] = None
    group: Optional[str] = None
    exclusion: Optional[ExclusionPredicate] = None

    def __post_init__(self):
        if self.offset_days is not None and self.anchor is None:
            raise ValueError(f"{self.notification_type.value}: an offset needs an anchor date")

    @property
    def channel(self) -> MessageType:
        return self.notification_type.behaviour.channel

    @property
    def immediate(self) -> bool:
        return self.offset_days is None

    def job_id(self, entity: TraineeEntity) -> str:
        return f"{self.notification_type.value}-{entity.tis_id}"


@dataclass(frozen=True)
class Decision:
    """A notification to create for an entity.

    ``fire_at`` is None for immediate sends.
    """

    notification_type: NotificationType
    channel: MessageType
    job_id: str
    subject_id: str
    reference: ReferenceInfo
    variables: Dict[str, Any]
    fire_at: Optional[datetime] = None

    @property
    def immediate(self) -> bool:
        return self.fire_at is None


@dataclass
class DecisionSet:
    """Everything one evaluation pass wants changed for an entity.

    Attributes:
        to_schedule: Deferred notifications with their fire or display time
        to_send_now: Direct notifications
        to_cancel: Job ids to remove
        stale_records: SCHEDULED records to delete before replacements are added
        skipped: Notification type -> reason it produced nothing this pass
    """

    to_schedule: List[Decision] = field(default_factory=list)
    to_send_now: List[Decision] = field(default_factory=list)
    to_cancel: List[str] = field(default_factory=list)
    stale_records: List[NotificationRecord] = field(default_factory=list)
    skipped: Dict[NotificationType, str] = field(default_factory=dict)

    def cancel(self, job_id: str, records: List[NotificationRecord] = ()) -> None:
        if job_id not in self.to_cancel:
            self.to_cancel.append(job_id)
        for record in records:
            if record not in self.stale_records:
                self.stale_records.append(record)

    def is_empty(self) -> bool:
        return not (self.to_schedule or self.to_send_now or self.to_cancel or self.stale_records)
