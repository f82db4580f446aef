"""Placement notification rules."""

from datetime import date
from typing import Any, Dict, List, Optional

from trainee_notifications.clients.reference import TSS_SUPPORT, ReferenceClient
from trainee_notifications.domain.entities import Placement
from trainee_notifications.domain.notification_types import NotificationType
from trainee_notifications.logging import get_logger

from .applier import ApplyResult, DecisionApplier
from .contacts import ContactLookup
from .engine import EligibilityEngine
from .models import DecisionSet, MilestoneDefinition

logger = get_logger(__name__, component="eligibility")

PLACEMENT_MILESTONE_TYPES = (
    NotificationType.PLACEMENT_UPDATED_WEEK_12,
    NotificationType.NON_EMPLOYMENT,
    NotificationType.PLACEMENT_INFORMATION,
    NotificationType.USEFUL_INFORMATION,
)


def placement_exclusion(placement: Placement, today: date) -> Optional[str]:
    """Scope of every placement milestone."""
    if not placement.is_notifiable_type():
        return f"placement type '{placement.placement_type}' is not notified"
    if placement.start_date is None:
        return "no start date"
    if placement.start_date < today:
        return "start date has passed"
    return None


def placement_variables(placement: Placement, contacts: ContactLookup) -> Dict[str, Any]:
    variables = {
        "tisId": placement.tis_id,
        "personId": placement.person_id,
        "startDate": placement.start_date,
        "placementType": placement.placement_type,
        "specialty": placement.specialty,
        "site": placement.site,
        "localOfficeName": placement.owner,
    }
    variables.update(contacts.variables(placement.owner, TSS_SUPPORT))
    return variables


def build_placement_definitions(contacts: ContactLookup) -> List[MilestoneDefinition]:
    """Definitions for every active placement milestone type."""
    return [
        MilestoneDefinition(
            notification_type=notification_type,
            offset_days=notification_type.behaviour.days_before,
            anchor=lambda p: p.start_date,
            variables=lambda p: placement_variables(p, contacts),
            exclusion=placement_exclusion,
        )
        for notification_type in PLACEMENT_MILESTONE_TYPES
        if notification_type.behaviour.active
    ]


class PlacementNotificationService:
    """Keeps a placement's notifications in line with its current state."""

    def __init__(
        self,
        engine: EligibilityEngine,
        applier: DecisionApplier,
        reference_client: Optional[ReferenceClient] = None,
    ):
        self.engine = engine
        self.applier = applier
        self.reference_client = reference_client

    def add_notifications(self, placement: Placement) -> DecisionSet:
        """Evaluate and apply the placement's milestones.

        Raises:
            SchedulingError: If the job registry rejects a change
        """
        definitions = build_placement_definitions(ContactLookup(self.reference_client))
        decisions = self.engine.decide(placement, definitions)
        self.applier.apply(placement, decisions)
        return decisions

    def delete_notifications(self, placement: Placement) -> ApplyResult:
        """Cancel every pending notification of a deleted placement."""
        definitions = build_placement_definitions(ContactLookup(None))
        return self.applier.cancel_all(placement, definitions)
