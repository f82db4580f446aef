"""Eligibility and deduplication of entity-driven notifications."""

from .applier import ApplyResult, DecisionApplier
from .contacts import ContactLookup
from .engine import DELIVERED_STATUSES, EligibilityEngine
from .models import Decision, DecisionSet, MilestoneDefinition
from .placements import (
    PlacementNotificationService,
    build_placement_definitions,
    placement_exclusion,
)
from .programmes import (
    REMINDER_GROUP,
    ProgrammeMembershipNotificationService,
    build_programme_definitions,
)

__all__ = [
    "EligibilityEngine",
    "DecisionApplier",
    "ApplyResult",
    "ContactLookup",
    "Decision",
    "DecisionSet",
    "MilestoneDefinition",
    "DELIVERED_STATUSES",
    "PlacementNotificationService",
    "ProgrammeMembershipNotificationService",
    "build_placement_definitions",
    "build_programme_definitions",
    "placement_exclusion",
    "REMINDER_GROUP",
]
