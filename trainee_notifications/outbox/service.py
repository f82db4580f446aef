"""Delivery outbox: hands ready-to-send references to a queue and processes them."""

import math
from typing import List, Optional, Sequence

from trainee_notifications.domain.models import NotificationStatus
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.context import log_context
from trainee_notifications.notifications.models import (
    DeliveryError,
    NotificationError,
    SendOutcome,
    SendStatus,
)
from trainee_notifications.notifications.payloads import JobPayload, outbox_job_id
from trainee_notifications.scheduler.registry import ScheduledJobRegistry

from .models import MAX_BATCH_SIZE, FailedItem, OutboxMessage, QueueChannel
from .tracing import TRACE_HEADER_ATTRIBUTE, current_trace_header

logger = get_logger(__name__, component="outbox")


class OutboxService:
    """Batches history ids onto a queue channel and sends them when consumed.

    Args:
        channel: Queue transport
        registry: Used for the immediate-execution path
        history: HistoryStore holding the SCHEDULED records
        destination: Queue name
        batch_size: Entries per batch call, at most 10
    """

    def __init__(
        self,
        channel: QueueChannel,
        registry: ScheduledJobRegistry,
        history,
        destination: str,
        batch_size: int = MAX_BATCH_SIZE,
    ):
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
        self.channel = channel
        self.registry = registry
        self.history = history
        self.destination = destination
        self.batch_size = batch_size

    def _message(self, history_id: str) -> OutboxMessage:
        header = current_trace_header()
        attributes = {TRACE_HEADER_ATTRIBUTE: header} if header else {}
        return OutboxMessage(id=history_id, body={"historyId": history_id}, attributes=attributes)

    def send_to_outbox(self, references: Sequence[str]) -> List[FailedItem]:
        """Submit references in batches.

        Every item is attempted; a batch that fails as a whole counts each of
        its items as failed.

        Returns:
            The items the channel did not accept (empty when all succeeded)
        """
        references = list(references)
        failures: List[FailedItem] = []
        batch_count = math.ceil(len(references) / self.batch_size)

        for index in range(batch_count):
            batch = references[index * self.batch_size:(index + 1) * self.batch_size]
            messages = [self._message(reference) for reference in batch]
            try:
                result = self.channel.send_batch(self.destination, messages)
                failures.extend(result.failed)
            except Exception as e:
                logger.error(
                    f"Outbox batch {index + 1}/{batch_count} failed: {e}",
                    exc_info=True,
                    extra={"event": "outbox.batch.failed", "batch_size": len(batch)},
                )
                failures.extend(FailedItem(reference, str(e)) for reference in batch)

        if failures:
            logger.warning(
                f"{len(failures)} of {len(references)} outbox items not accepted",
                extra={
                    "event": "outbox.items.failed",
                    "failed": [f.reference for f in failures],
                },
            )
        logger.info(
            f"Submitted {len(references) - len(failures)} item(s) to {self.destination}",
            extra={
                "event": "outbox.submitted",
                "batches": batch_count,
                "accepted": len(references) - len(failures),
            },
        )
        return failures

    def send_scheduled(self, reference: str) -> SendOutcome:
        """Send a SCHEDULED record now.

        Anything not SCHEDULED was already handled and is not an error.

        Raises:
            DeliveryError: If the send did not succeed, so the transport redelivers
        """
        with log_context(history_id=reference):
            record = self.history.get(reference)
            if record is None or record.status != NotificationStatus.SCHEDULED:
                logger.info(
                    f"Outbox item {reference} already handled",
                    extra={
                        "event": "outbox.already_handled",
                        "status": record.status.value if record else None,
                    },
                )
                return SendOutcome.already_handled(reference)

            payload = JobPayload.from_record(record).to_job_data()
            try:
                outcome: Optional[SendOutcome] = self.registry.execute_now(
                    outbox_job_id(reference), payload
                )
            except NotificationError as e:
                raise DeliveryError(f"Outbox item {reference} not sent: {e}", reference) from e

            if outcome is not None and outcome.status == SendStatus.ALREADY_HANDLED:
                return outcome
            if outcome is None or not outcome.is_success():
                reason = outcome.reason if outcome else "no outcome"
                raise DeliveryError(f"Outbox item {reference} not sent: {reason}", reference)

            logger.info(
                f"Outbox item {reference} sent",
                extra={"event": "outbox.sent", "status": outcome.to_result_map()["status"]},
            )
            return outcome
