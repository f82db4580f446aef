"""Entry points for inbound entity events.

Events for the same entity are handled one at a time, so two updates of one
placement cannot interleave their decide/apply passes. Different entities
proceed in parallel.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from trainee_notifications.domain.entities import Placement, ProgrammeMembership
from trainee_notifications.domain.models import NotificationRecord
from trainee_notifications.eligibility.applier import ApplyResult
from trainee_notifications.eligibility.models import DecisionSet
from trainee_notifications.eligibility.placements import PlacementNotificationService
from trainee_notifications.eligibility.programmes import ProgrammeMembershipNotificationService
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context
from trainee_notifications.resend.contact_details import ContactDetailsService

logger = get_logger(__name__, component="events")


class KeyedLock:
    """Per-key mutual exclusion; a key's lock is dropped once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], List] = {}

    @contextmanager
    def hold(self, key: Tuple[str, str]) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class NotificationEventHandler:
    """Routes entity events to the notification services."""

    def __init__(
        self,
        placements: PlacementNotificationService,
        programmes: ProgrammeMembershipNotificationService,
        contact_details: Optional[ContactDetailsService] = None,
    ):
        self.placements = placements
        self.programmes = programmes
        self.contact_details = contact_details
        self._locks = KeyedLock()

    def on_placement_updated(self, placement: Placement) -> DecisionSet:
        with log_context(event_type="placement.updated"):
            with self._locks.hold((placement.reference_type.value, placement.tis_id)):
                return self.placements.add_notifications(placement)

    def on_placement_deleted(self, placement: Placement) -> ApplyResult:
        with log_context(event_type="placement.deleted"):
            with self._locks.hold((placement.reference_type.value, placement.tis_id)):
                return self.placements.delete_notifications(placement)

    def on_programme_membership_updated(self, membership: ProgrammeMembership) -> DecisionSet:
        with log_context(event_type="programme_membership.updated"):
            with self._locks.hold((membership.reference_type.value, membership.tis_id)):
                return self.programmes.add_notifications(membership)

    def on_programme_membership_deleted(self, membership: ProgrammeMembership) -> ApplyResult:
        with log_context(event_type="programme_membership.deleted"):
            with self._locks.hold((membership.reference_type.value, membership.tis_id)):
                return self.programmes.delete_notifications(membership)

    def on_contact_details_updated(
        self, subject_id: str, email: Optional[str]
    ) -> List[NotificationRecord]:
        if self.contact_details is None:
            logger.warning(
                "Contact details update received but resending is not configured",
                extra={"event": "events.contact_details.unhandled", "subject_id": subject_id},
            )
            return []
        with log_context(event_type="contact_details.updated"):
            with self._locks.hold(("SUBJECT", subject_id)):
                return self.contact_details.update_contact(subject_id, email)
