"""Domain models for trainee notifications."""

from .entities import Curriculum, Placement, ProgrammeMembership, TraineeEntity
from .models import (
    NotificationRecord,
    NotificationStatus,
    Recipient,
    ReferenceInfo,
    TemplateInfo,
    can_transition,
    normalise_variables,
)
from .notification_types import (
    CATALOG,
    Anchor,
    MessageType,
    NotificationType,
    ReferenceType,
    TypeBehaviour,
)

__all__ = [
    # History
    "NotificationRecord",
    "NotificationStatus",
    "Recipient",
    "ReferenceInfo",
    "TemplateInfo",
    "can_transition",
    "normalise_variables",
    # Catalog
    "CATALOG",
    "Anchor",
    "MessageType",
    "NotificationType",
    "ReferenceType",
    "TypeBehaviour",
    # Entities
    "Curriculum",
    "Placement",
    "ProgrammeMembership",
    "TraineeEntity",
]
