"""Programme membership notification rules."""

from datetime import date
from typing import Any, Dict, List, Optional

from trainee_notifications.clients.reference import (
    ONBOARDING_SUPPORT,
    TSS_SUPPORT,
    ReferenceClient,
)
from trainee_notifications.domain.entities import ProgrammeMembership
from trainee_notifications.domain.notification_types import (
    PROGRAMME_REMINDER_TYPES,
    NotificationType,
)

from .applier import ApplyResult, DecisionApplier
from .contacts import ContactLookup
from .engine import EligibilityEngine
from .models import DecisionSet, MilestoneDefinition

REMINDER_GROUP = "programme-reminders"

DIRECT_IN_APP_TYPES = (
    NotificationType.E_PORTFOLIO,
    NotificationType.INDEMNITY_INSURANCE,
    NotificationType.LTFT,
    NotificationType.SPONSORSHIP,
)


def membership_exclusion(membership: ProgrammeMembership, today: date) -> Optional[str]:
    """Scope of every programme notification."""
    if membership.is_excluded():
        return "programme is not a notified medical curriculum"
    return None


def start_date_exclusion(membership: ProgrammeMembership, today: date) -> Optional[str]:
    """Scope of the start-date milestones."""
    reason = membership_exclusion(membership, today)
    if reason:
        return reason
    if membership.start_date is None:
        return "no start date"
    if membership.start_date < today:
        return "start date has passed"
    return None


def cct_exclusion(membership: ProgrammeMembership, today: date) -> Optional[str]:
    """Scope of the period-of-grace milestone."""
    reason = membership_exclusion(membership, today)
    if reason:
        return reason
    cct_date = membership.cct_date()
    if cct_date is None:
        return "no CCT date"
    if cct_date < today:
        return "CCT date has passed"
    return None


def programme_variables(membership: ProgrammeMembership, contacts: ContactLookup) -> Dict[str, Any]:
    variables = {
        "tisId": membership.tis_id,
        "personId": membership.person_id,
        "programmeName": membership.programme_name,
        "programmeNumber": membership.programme_number,
        "startDate": membership.start_date,
        "cctDate": membership.cct_date(),
        "managingDeanery": membership.managing_deanery,
        "designatedBody": membership.designated_body,
        "responsibleOfficer": membership.responsible_officer,
        "conditionsOfJoiningSyncedAt": membership.conditions_of_joining_synced_at,
    }
    variables.update(
        contacts.variables(membership.managing_deanery, ONBOARDING_SUPPORT, TSS_SUPPORT)
    )
    return variables


def build_programme_definitions(contacts: ContactLookup) -> List[MilestoneDefinition]:
    """Definitions for every active programme membership notification type."""

    def variables(membership):
        return programme_variables(membership, contacts)

    def start(membership):
        return membership.start_date

    reminder_types = sorted(
        [t for t in PROGRAMME_REMINDER_TYPES if t.behaviour.active]
        + [NotificationType.PROGRAMME_DAY_ONE],
        key=lambda t: -t.behaviour.days_before,
    )

    definitions = [
        MilestoneDefinition(
            NotificationType.PROGRAMME_CREATED, variables, exclusion=membership_exclusion
        ),
    ]
    definitions.extend(
        MilestoneDefinition(
            notification_type,
            variables,
            offset_days=notification_type.behaviour.days_before,
            anchor=start,
            group=REMINDER_GROUP,
            exclusion=start_date_exclusion,
        )
        for notification_type in reminder_types
    )
    definitions.append(
        MilestoneDefinition(
            NotificationType.PROGRAMME_POG_MONTH_12,
            variables,
            offset_days=NotificationType.PROGRAMME_POG_MONTH_12.behaviour.days_before,
            anchor=lambda m: m.cct_date(),
            exclusion=cct_exclusion,
        )
    )
    definitions.append(
        MilestoneDefinition(
            NotificationType.DAY_ONE,
            variables,
            offset_days=NotificationType.DAY_ONE.behaviour.days_before,
            anchor=start,
            exclusion=start_date_exclusion,
        )
    )
    definitions.extend(
        MilestoneDefinition(notification_type, variables, exclusion=membership_exclusion)
        for notification_type in DIRECT_IN_APP_TYPES
    )
    return [d for d in definitions if d.notification_type.behaviour.active]


class ProgrammeMembershipNotificationService:
    """Keeps a programme membership's notifications in line with its current state."""

    def __init__(
        self,
        engine: EligibilityEngine,
        applier: DecisionApplier,
        reference_client: Optional[ReferenceClient] = None,
    ):
        self.engine = engine
        self.applier = applier
        self.reference_client = reference_client

    def add_notifications(self, membership: ProgrammeMembership) -> DecisionSet:
        """Evaluate and apply the membership's notifications.

        Raises:
            SchedulingError: If the job registry rejects a change
        """
        definitions = build_programme_definitions(ContactLookup(self.reference_client))
        decisions = self.engine.decide(membership, definitions)
        self.applier.apply(membership, decisions)
        return decisions

    def delete_notifications(self, membership: ProgrammeMembership) -> ApplyResult:
        """Cancel every pending notification of a deleted membership."""
        definitions = build_programme_definitions(ContactLookup(None))
        return self.applier.cancel_all(membership, definitions)
