"""Eligibility and deduplication engine.

Decides, for one trainee entity, which notifications to schedule, send now
or cancel. The engine only reads history; applying a DecisionSet is the
DecisionApplier's job.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from trainee_notifications.domain.entities import TraineeEntity
from trainee_notifications.domain.models import (
    NotificationRecord,
    NotificationStatus,
    ReferenceInfo,
    normalise_variables,
)
from trainee_notifications.domain.notification_types import MessageType, NotificationType
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context
from trainee_notifications.scheduler.registry import get_schedule_date

from .models import Decision, DecisionSet, MilestoneDefinition

logger = get_logger(__name__, component="eligibility")

# Statuses meaning the trainee actually received the notification
DELIVERED_STATUSES = frozenset(
    {NotificationStatus.SENT, NotificationStatus.UNREAD, NotificationStatus.READ}
)


class EligibilityEngine:
    """Evaluates milestone definitions against an entity and its history.

    Args:
        history: HistoryStore used for the dedup lookup
        zone: Zone in which milestone dates are civil dates
        missed_delay_seconds: Buffer added to "now" for a missed email milestone
        clock: Returns the current UTC time, for tests
    """

    def __init__(
        self,
        history,
        zone: ZoneInfo,
        missed_delay_seconds: int = 60,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.history = history
        self.zone = zone
        self.missed_delay = timedelta(seconds=missed_delay_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def decide(
        self, entity: TraineeEntity, definitions: Sequence[MilestoneDefinition]
    ) -> DecisionSet:
        """Compute the notifications an entity should have.

        Algorithm:
        1. Load the entity's history once
        2. Evaluate each definition's exclusion predicate
        3. Compute milestone dates for in-scope deferred definitions
        4. Per definition: apply group rules, build variables, deduplicate
        5. Return the DecisionSet

        Returns:
            DecisionSet describing the changes to apply
        """
        now = self._clock()
        today = now.astimezone(self.zone).date()
        decisions = DecisionSet()

        with log_context(
            subject_id=entity.person_id,
            reference_type=entity.reference_type.value,
            reference_id=entity.tis_id,
        ):
            # Step 1: One history read per pass
            history = self.history.find_for_reference(
                entity.person_id, entity.reference_type, entity.tis_id
            )

            # Step 2: Scope predicates
            exclusions: Dict[NotificationType, Optional[str]] = {
                d.notification_type: d.exclusion(entity, today) if d.exclusion else None
                for d in definitions
            }

            # Step 3: Milestone dates of in-scope deferred definitions
            milestone_dates: Dict[NotificationType, date] = {}
            for d in definitions:
                if d.immediate or exclusions[d.notification_type]:
                    continue
                anchor_date = d.anchor(entity)
                if anchor_date is not None:
                    milestone_dates[d.notification_type] = anchor_date - timedelta(days=d.offset_days)

            # Step 4: Per definition
            for d in definitions:
                with log_context(notification_type=d.notification_type.value):
                    self._evaluate(
                        entity, d, definitions, history, exclusions, milestone_dates,
                        now, today, decisions,
                    )

            logger.info(
                f"Evaluated {len(definitions)} notification types for "
                f"{entity.reference_type.value} {entity.tis_id}: "
                f"{len(decisions.to_schedule)} to schedule, {len(decisions.to_send_now)} to send, "
                f"{len(decisions.to_cancel)} to cancel",
                extra={
                    "event": "eligibility.decided",
                    "scheduled": len(decisions.to_schedule),
                    "immediate": len(decisions.to_send_now),
                    "cancelled": len(decisions.to_cancel),
                    "stale": len(decisions.stale_records),
                    "skipped": len(decisions.skipped),
                },
            )

        return decisions

    def _evaluate(
        self,
        entity: TraineeEntity,
        definition: MilestoneDefinition,
        definitions: Sequence[MilestoneDefinition],
        history: List[NotificationRecord],
        exclusions: Dict[NotificationType, Optional[str]],
        milestone_dates: Dict[NotificationType, date],
        now: datetime,
        today: date,
        decisions: DecisionSet,
    ) -> None:
        notification_type = definition.notification_type
        channel = definition.channel
        job_id = definition.job_id(entity)
        reference = ReferenceInfo(type=entity.reference_type, id=entity.tis_id)

        existing = [r for r in history if r.matches(reference, notification_type, channel)]
        scheduled = [r for r in existing if r.status == NotificationStatus.SCHEDULED]

        def skip(reason: str, cancel: bool = False) -> None:
            if cancel and not definition.immediate:
                decisions.cancel(job_id, scheduled)
            decisions.skipped[notification_type] = reason
            logger.debug(
                f"Skipping {notification_type.value}: {reason}",
                extra={"event": "eligibility.skipped", "reason": reason, "cancelled": cancel},
            )

        reason = exclusions[notification_type]
        if reason:
            skip(reason, cancel=True)
            return

        milestone_date = None
        if not definition.immediate:
            milestone_date = milestone_dates.get(notification_type)
            if milestone_date is None:
                skip("no anchor date", cancel=True)
                return

            group_reason = self._group_reason(
                definition, milestone_date, today, definitions, milestone_dates, history
            )
            if group_reason:
                skip(group_reason, cancel=True)
                return

        try:
            variables = normalise_variables(definition.variables(entity))
        except Exception as e:
            # Left for a later pass; existing jobs stay untouched
            logger.warning(
                f"Could not build variables for {notification_type.value}: {e}",
                exc_info=True,
                extra={"event": "eligibility.context_failed", "error_type": type(e).__name__},
            )
            decisions.skipped[notification_type] = f"context unavailable: {e}"
            return

        stale = [r for r in scheduled if r.template.variables != variables]
        if stale:
            decisions.cancel(job_id, stale)
            logger.info(
                f"Replacing {len(stale)} stale scheduled {notification_type.value} record(s)",
                extra={"event": "eligibility.stale", "history_ids": [r.id for r in stale]},
            )

        if channel == MessageType.IN_APP:
            satisfied = [r for r in existing if r not in stale]
        else:
            satisfied = [
                r for r in existing if r.status != NotificationStatus.FAILED and r not in stale
            ]
        if satisfied:
            skip("already satisfied")
            return

        decision = Decision(
            notification_type=notification_type,
            channel=channel,
            job_id=job_id,
            subject_id=entity.person_id,
            reference=reference,
            variables=variables,
            fire_at=None if definition.immediate else self._fire_time(
                definition, entity, milestone_date, today, now
            ),
        )
        if decision.immediate:
            decisions.to_send_now.append(decision)
        else:
            decisions.to_schedule.append(decision)

    def _fire_time(
        self,
        definition: MilestoneDefinition,
        entity: TraineeEntity,
        milestone_date: date,
        today: date,
        now: datetime,
    ) -> datetime:
        """Local midnight of the milestone date, or "now" when it was missed."""
        if milestone_date > today:
            return get_schedule_date(definition.anchor(entity), definition.offset_days, self.zone)
        if definition.channel == MessageType.EMAIL:
            return now + self.missed_delay
        return now

    @staticmethod
    def _group_reason(
        definition: MilestoneDefinition,
        milestone_date: date,
        today: date,
        definitions: Sequence[MilestoneDefinition],
        milestone_dates: Dict[NotificationType, date],
        history: List[NotificationRecord],
    ) -> Optional[str]:
        """Apply reminder-series rules; returns a reason to skip, or None."""
        if not definition.group:
            return None

        more_recent = [
            d for d in definitions
            if d.group == definition.group
            and d is not definition
            and d.notification_type in milestone_dates
            and d.offset_days < definition.offset_days
        ]

        if milestone_date > today:
            for peer in more_recent:
                if any(
                    r.type == peer.notification_type and r.status in DELIVERED_STATUSES
                    for r in history
                ):
                    return f"{peer.notification_type.value} already sent"
            return None

        for peer in more_recent:
            if milestone_dates[peer.notification_type] <= today:
                return f"{peer.notification_type.value} is the most recent missed milestone"
        return None
