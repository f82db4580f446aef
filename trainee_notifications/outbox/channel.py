"""In-process queue channel with at-least-once delivery."""

import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from trainee_notifications.logging import get_logger

from .models import MAX_BATCH_SIZE, BatchResult, FailedItem, OutboxMessage

logger = get_logger(__name__, component="outbox")


@dataclass
class _Envelope:
    message: OutboxMessage
    receive_count: int = 0


class LocalQueueChannel:
    """Thread-safe queues keyed by destination.

    A handler that raises leaves the message for redelivery until it has been
    received ``max_receive_count`` times; it is then dead-lettered.
    """

    def __init__(self, max_receive_count: int = 3):
        self.max_receive_count = max_receive_count
        self._lock = threading.Lock()
        self._queues: Dict[str, "queue.Queue[_Envelope]"] = {}
        self._dead_letters: Dict[str, List[OutboxMessage]] = {}

    def _queue(self, destination: str) -> "queue.Queue[_Envelope]":
        with self._lock:
            return self._queues.setdefault(destination, queue.Queue())

    def send_batch(self, destination: str, messages: Sequence[OutboxMessage]) -> BatchResult:
        if len(messages) > MAX_BATCH_SIZE:
            raise ValueError(
                f"Batch of {len(messages)} exceeds the limit of {MAX_BATCH_SIZE} entries"
            )

        result = BatchResult()
        target = self._queue(destination)
        for message in messages:
            if not message.body.get("historyId"):
                result.failed.append(FailedItem(message.id, "message has no historyId"))
                continue
            target.put(_Envelope(message))
            result.successful.append(message.id)
        return result

    def pending(self, destination: str) -> int:
        return self._queue(destination).qsize()

    def dead_letters(self, destination: str) -> List[OutboxMessage]:
        with self._lock:
            return list(self._dead_letters.get(destination, []))

    def drain(
        self,
        destination: str,
        handler: Callable[[OutboxMessage], object],
        max_messages: Optional[int] = None,
    ) -> int:
        """Deliver queued messages to ``handler``.

        Messages re-queued during this drain are delivered again within it,
        bounded by ``max_receive_count``.

        Returns:
            Number of messages handled successfully
        """
        target = self._queue(destination)
        handled = 0
        received = 0

        while max_messages is None or received < max_messages:
            try:
                envelope = target.get_nowait()
            except queue.Empty:
                break

            received += 1
            envelope.receive_count += 1
            try:
                handler(envelope.message)
                handled += 1
            except Exception as e:
                if envelope.receive_count >= self.max_receive_count:
                    with self._lock:
                        self._dead_letters.setdefault(destination, []).append(envelope.message)
                    logger.error(
                        f"Message {envelope.message.id} dead-lettered after "
                        f"{envelope.receive_count} attempts: {e}",
                        exc_info=True,
                        extra={
                            "event": "outbox.message.dead_lettered",
                            "history_id": envelope.message.history_id,
                            "receive_count": envelope.receive_count,
                        },
                    )
                else:
                    logger.warning(
                        f"Message {envelope.message.id} will be redelivered: {e}",
                        extra={
                            "event": "outbox.message.redelivery",
                            "history_id": envelope.message.history_id,
                            "receive_count": envelope.receive_count,
                        },
                    )
                    target.put(envelope)

        return handled
