"""Trainee entities that drive entity-based notifications.

These are the already-mapped shapes of inbound placement and programme
membership events. Each exposes an identity (``tis_id``) and the trainee it
belongs to (``person_id``).
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .notification_types import ReferenceType

PLACEMENT_TYPES_TO_NOTIFY = frozenset({"in post", "in post - acting up", "in post - extension"})
MEDICAL_CURRICULUM_SUB_TYPES = frozenset({"MEDICAL_CURRICULUM", "MEDICAL_SPR"})
EXCLUDED_SPECIALTIES = frozenset({"PUBLIC HEALTH MEDICINE", "FOUNDATION"})


class Curriculum(BaseModel):
    """A curriculum within a programme membership."""

    sub_type: Optional[str] = Field(None, description="Curriculum sub-type")
    specialty: Optional[str] = Field(None, description="Curriculum specialty")
    end_date: Optional[date] = Field(None, description="Curriculum end date")
    eligible_for_period_of_grace: bool = Field(False)

    @field_validator("sub_type", "specialty")
    @classmethod
    def normalise_code(cls, v: Optional[str]) -> Optional[str]:
        """Upper-case and strip code-like fields."""
        if v is None:
            return None
        stripped = v.strip().upper()
        return stripped or None


class TraineeEntity(BaseModel):
    """Fields shared by every entity that can own notifications."""

    tis_id: str = Field(..., min_length=1, description="Entity identifier")
    person_id: str = Field(..., min_length=1, description="Trainee identifier")

    reference_type: ReferenceType

    @field_validator("tis_id", "person_id")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped


class Placement(TraineeEntity):
    """A trainee placement."""

    reference_type: ReferenceType = ReferenceType.PLACEMENT

    start_date: Optional[date] = None
    placement_type: Optional[str] = None
    specialty: Optional[str] = None
    site: Optional[str] = None
    owner: Optional[str] = Field(None, description="Owning local office name")

    def is_notifiable_type(self) -> bool:
        """Whether the placement type receives placement notifications."""
        if not self.placement_type:
            return False
        return self.placement_type.strip().lower() in PLACEMENT_TYPES_TO_NOTIFY


class ProgrammeMembership(TraineeEntity):
    """A trainee programme membership."""

    reference_type: ReferenceType = ReferenceType.PROGRAMME_MEMBERSHIP

    programme_name: Optional[str] = None
    programme_number: Optional[str] = None
    start_date: Optional[date] = None
    managing_deanery: Optional[str] = None
    designated_body: Optional[str] = None
    responsible_officer: Optional[str] = None
    conditions_of_joining_synced_at: Optional[datetime] = None
    curricula: List[Curriculum] = Field(default_factory=list)

    def is_excluded(self) -> bool:
        """Whether the membership is outside notification scope entirely.

        A membership is in scope only when at least one curriculum is a
        medical curriculum and none belongs to an excluded specialty.
        """
        has_medical = any(c.sub_type in MEDICAL_CURRICULUM_SUB_TYPES for c in self.curricula)
        has_excluded = any(c.specialty in EXCLUDED_SPECIALTIES for c in self.curricula)
        return not has_medical or has_excluded

    def cct_date(self) -> Optional[date]:
        """Latest curriculum end date among curricula eligible for a period of grace."""
        end_dates = [
            c.end_date for c in self.curricula
            if c.eligible_for_period_of_grace and c.end_date is not None
        ]
        return max(end_dates) if end_dates else None
