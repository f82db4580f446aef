"""Notification type catalog.

Each notification type maps to a template name and a row of behaviour data:
the channel it is delivered over, the kind of entity it references, whether
new notifications of the type may still be created, and the anchor and day
offset used to compute its milestone. New types are added as data here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional


class MessageType(str, Enum):
    """Delivery channel."""

    EMAIL = "EMAIL"
    IN_APP = "IN_APP"


class ReferenceType(str, Enum):
    """Kind of trainee entity a notification can reference."""

    PLACEMENT = "PLACEMENT"
    PROGRAMME_MEMBERSHIP = "PROGRAMME_MEMBERSHIP"
    FORM_R_PART_A = "FORM_R_PART_A"
    FORM_R_PART_B = "FORM_R_PART_B"
    LTFT = "LTFT"


class Anchor(str, Enum):
    """Entity date a milestone is measured back from."""

    START = "START"
    END = "END"
    NONE = "NONE"


class NotificationType(str, Enum):
    """Closed set of notification types."""

    COJ_CONFIRMATION = "COJ_CONFIRMATION"
    CREDENTIAL_REVOKED = "CREDENTIAL_REVOKED"
    DAY_ONE = "DAY_ONE"
    DEFERRAL = "DEFERRAL"
    E_PORTFOLIO = "E_PORTFOLIO"
    EMAIL_UPDATED_NEW = "EMAIL_UPDATED_NEW"
    EMAIL_UPDATED_OLD = "EMAIL_UPDATED_OLD"
    FORM_SUBMITTED = "FORM_SUBMITTED"
    FORM_UPDATED = "FORM_UPDATED"
    GMC_REJECTED_LO = "GMC_REJECTED_LO"
    GMC_REJECTED_TRAINEE = "GMC_REJECTED_TRAINEE"
    GMC_UPDATED = "GMC_UPDATED"
    INDEMNITY_INSURANCE = "INDEMNITY_INSURANCE"
    LTFT = "LTFT"
    LTFT_APPROVED = "LTFT_APPROVED"
    LTFT_REJECTED = "LTFT_REJECTED"
    LTFT_SUBMITTED = "LTFT_SUBMITTED"
    LTFT_UPDATED = "LTFT_UPDATED"
    LTFT_WITHDRAWN = "LTFT_WITHDRAWN"
    NON_EMPLOYMENT = "NON_EMPLOYMENT"
    PLACEMENT_INFORMATION = "PLACEMENT_INFORMATION"
    PLACEMENT_ROLLOUT_2024_CORRECTION = "PLACEMENT_ROLLOUT_2024_CORRECTION"
    PLACEMENT_UPDATED_WEEK_12 = "PLACEMENT_UPDATED_WEEK_12"
    PROGRAMME_CREATED = "PROGRAMME_CREATED"
    PROGRAMME_DAY_ONE = "PROGRAMME_DAY_ONE"
    PROGRAMME_POG_MONTH_12 = "PROGRAMME_POG_MONTH_12"
    PROGRAMME_UPDATED_WEEK_12 = "PROGRAMME_UPDATED_WEEK_12"
    PROGRAMME_UPDATED_WEEK_8 = "PROGRAMME_UPDATED_WEEK_8"
    PROGRAMME_UPDATED_WEEK_4 = "PROGRAMME_UPDATED_WEEK_4"
    PROGRAMME_UPDATED_WEEK_2 = "PROGRAMME_UPDATED_WEEK_2"
    PROGRAMME_UPDATED_WEEK_1 = "PROGRAMME_UPDATED_WEEK_1"
    PROGRAMME_UPDATED_WEEK_0 = "PROGRAMME_UPDATED_WEEK_0"
    SPONSORSHIP = "SPONSORSHIP"
    USEFUL_INFORMATION = "USEFUL_INFORMATION"
    WELCOME = "WELCOME"

    @property
    def behaviour(self) -> "TypeBehaviour":
        return CATALOG[self]

    @property
    def template_name(self) -> str:
        return CATALOG[self].template_name

    @classmethod
    def from_template_name(cls, template_name: str) -> "NotificationType":
        """Resolve a notification type from its template name.

        Raises:
            ValueError: If no type uses the template name
        """
        for notification_type, behaviour in CATALOG.items():
            if behaviour.template_name == template_name:
                return notification_type
        raise ValueError(f"No notification type uses template '{template_name}'")


@dataclass(frozen=True)
class TypeBehaviour:
    """Static behaviour of a notification type."""

    template_name: str
    channel: MessageType
    reference_type: Optional[ReferenceType] = None
    active: bool = True
    reminder: bool = False
    anchor: Anchor = Anchor.NONE
    days_before: Optional[int] = None

    @property
    def is_milestone(self) -> bool:
        """Whether the type fires at a date derived from its anchor."""
        return self.anchor != Anchor.NONE and self.days_before is not None


def _email(template, reference=None, **kwargs) -> TypeBehaviour:
    return TypeBehaviour(template, MessageType.EMAIL, reference, **kwargs)


def _in_app(template, reference=None, **kwargs) -> TypeBehaviour:
    return TypeBehaviour(template, MessageType.IN_APP, reference, **kwargs)


_PM = ReferenceType.PROGRAMME_MEMBERSHIP
_PLACEMENT = ReferenceType.PLACEMENT

CATALOG: Dict[NotificationType, TypeBehaviour] = {
    # Programme membership email
    NotificationType.PROGRAMME_CREATED: _email("programme-created", _PM, anchor=Anchor.START),
    NotificationType.PROGRAMME_DAY_ONE: _email(
        "programme-day-one", _PM, anchor=Anchor.START, days_before=0
    ),
    NotificationType.PROGRAMME_UPDATED_WEEK_12: _email(
        "programme-updated-week-12", _PM, reminder=True, anchor=Anchor.START, days_before=84
    ),
    NotificationType.PROGRAMME_UPDATED_WEEK_8: _email(
        "programme-updated-week-8", _PM, active=False, reminder=True,
        anchor=Anchor.START, days_before=56,
    ),
    NotificationType.PROGRAMME_UPDATED_WEEK_4: _email(
        "programme-updated-week-4", _PM, reminder=True, anchor=Anchor.START, days_before=28
    ),
    NotificationType.PROGRAMME_UPDATED_WEEK_2: _email(
        "programme-updated-week-2", _PM, reminder=True, anchor=Anchor.START, days_before=14
    ),
    NotificationType.PROGRAMME_UPDATED_WEEK_1: _email(
        "programme-updated-week-1", _PM, active=False, reminder=True,
        anchor=Anchor.START, days_before=7,
    ),
    NotificationType.PROGRAMME_UPDATED_WEEK_0: _email(
        "programme-updated-week-0", _PM, active=False, reminder=True,
        anchor=Anchor.START, days_before=0,
    ),
    NotificationType.PROGRAMME_POG_MONTH_12: _email(
        "programme-pog-month-12", _PM, anchor=Anchor.END, days_before=365
    ),
    # Programme membership in-app
    NotificationType.DAY_ONE: _in_app("day-one", _PM, anchor=Anchor.START, days_before=0),
    NotificationType.DEFERRAL: _in_app("deferral", _PM),
    NotificationType.E_PORTFOLIO: _in_app("e-portfolio", _PM),
    NotificationType.INDEMNITY_INSURANCE: _in_app("indemnity-insurance", _PM),
    NotificationType.LTFT: _in_app("less-than-full-time", _PM),
    NotificationType.SPONSORSHIP: _in_app("sponsorship", _PM),
    # Placement email
    NotificationType.PLACEMENT_UPDATED_WEEK_12: _email(
        "placement-updated-week-12", _PLACEMENT, anchor=Anchor.START, days_before=84
    ),
    NotificationType.PLACEMENT_ROLLOUT_2024_CORRECTION: _email(
        "placement-rollout-2024-correction", _PLACEMENT
    ),
    # Placement in-app, displayed alongside the week 12 email
    NotificationType.NON_EMPLOYMENT: _in_app(
        "non-employment", _PLACEMENT, anchor=Anchor.START, days_before=84
    ),
    NotificationType.PLACEMENT_INFORMATION: _in_app(
        "placement-information", _PLACEMENT, anchor=Anchor.START, days_before=84
    ),
    NotificationType.USEFUL_INFORMATION: _in_app(
        "placement-useful-information", _PLACEMENT, anchor=Anchor.START, days_before=84
    ),
    # Forms and less than full time
    NotificationType.FORM_SUBMITTED: _email("form-submitted"),
    NotificationType.FORM_UPDATED: _email("form-updated"),
    NotificationType.LTFT_APPROVED: _email("ltft-approved", ReferenceType.LTFT),
    NotificationType.LTFT_REJECTED: _email("ltft-rejected", ReferenceType.LTFT),
    NotificationType.LTFT_SUBMITTED: _email("ltft-submitted", ReferenceType.LTFT),
    NotificationType.LTFT_UPDATED: _email("ltft-updated", ReferenceType.LTFT),
    NotificationType.LTFT_WITHDRAWN: _email("ltft-withdrawn", ReferenceType.LTFT),
    # Conditions of joining and GMC
    NotificationType.COJ_CONFIRMATION: _email("coj-confirmation", _PM),
    NotificationType.GMC_UPDATED: _email("gmc-updated"),
    NotificationType.GMC_REJECTED_LO: _email("gmc-rejected-lo"),
    NotificationType.GMC_REJECTED_TRAINEE: _email("gmc-rejected-trainee"),
    # Account
    NotificationType.CREDENTIAL_REVOKED: _email("credential-revoked"),
    NotificationType.EMAIL_UPDATED_NEW: _email("email-updated-new"),
    NotificationType.EMAIL_UPDATED_OLD: _email("email-updated-old"),
    NotificationType.WELCOME: _email("welcome"),
}

PROGRAMME_REMINDER_TYPES: FrozenSet[NotificationType] = frozenset(
    t for t, b in CATALOG.items()
    if b.reference_type == _PM and b.channel == MessageType.EMAIL and b.reminder
)

MILESTONE_TYPES: FrozenSet[NotificationType] = frozenset(
    t for t, b in CATALOG.items() if b.is_milestone
)
