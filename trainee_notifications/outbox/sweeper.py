"""Periodic jobs feeding and draining the outbox."""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from trainee_notifications.logging import get_logger

from .channel import LocalQueueChannel
from .service import OutboxService

logger = get_logger(__name__, component="outbox")


@dataclass
class SweepResult:
    displayed: int = 0
    overdue: int = 0
    failed: int = 0


class OverdueNotificationSweeper:
    """Finds notifications whose time has come and queues them.

    Due in-app records are marked displayed; SCHEDULED emails overdue by more
    than the grace period (their job never ran) are sent to the outbox.
    """

    def __init__(
        self,
        history,
        outbox: OutboxService,
        grace_seconds: int = 300,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.history = history
        self.outbox = outbox
        self.grace = timedelta(seconds=grace_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self) -> SweepResult:
        now = self._clock()
        result = SweepResult()

        result.displayed = self.history.mark_due_in_app_displayed(now)

        overdue_ids = self.history.find_overdue_ids(now - self.grace)
        result.overdue = len(overdue_ids)
        if overdue_ids:
            failures = self.outbox.send_to_outbox(overdue_ids)
            result.failed = len(failures)
            for failure in failures:
                logger.error(
                    f"Overdue notification {failure.reference} not queued: {failure.reason}",
                    extra={"event": "sweep.queue_failed", "history_id": failure.reference},
                )

        logger.info(
            f"Sweep complete: {result.displayed} in-app displayed, "
            f"{result.overdue} overdue email(s) queued, {result.failed} failed",
            extra={"event": "sweep.completed", **asdict(result)},
        )
        return result


class OutboxConsumer:
    """Drains the local outbox queue into OutboxService.send_scheduled."""

    def __init__(self, channel: LocalQueueChannel, outbox: OutboxService):
        self.channel = channel
        self.outbox = outbox

    def run(self) -> int:
        handled = self.channel.drain(
            self.outbox.destination,
            lambda message: self.outbox.send_scheduled(message.history_id),
        )
        if handled:
            logger.info(
                f"Processed {handled} outbox message(s)",
                extra={"event": "outbox.drained", "handled": handled},
            )
        return handled
