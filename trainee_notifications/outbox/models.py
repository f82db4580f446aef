"""Outbox message and batch result types."""

from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence

# Queue transports accept at most this many entries per batch call
MAX_BATCH_SIZE = 10


@dataclass(frozen=True)
class OutboxMessage:
    """One outbox item: a reference to a SCHEDULED history record."""

    id: str
    body: Dict[str, str]
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def history_id(self) -> str:
        return self.body["historyId"]


@dataclass(frozen=True)
class FailedItem:
    """An item the channel did not accept."""

    reference: str
    reason: str


@dataclass
class BatchResult:
    """Per-item outcome of one batch hand-off."""

    successful: List[str] = field(default_factory=list)
    failed: List[FailedItem] = field(default_factory=list)


class QueueChannel(Protocol):
    def send_batch(self, destination: str, messages: Sequence[OutboxMessage]) -> BatchResult:
        """Hand a batch to the transport, reporting per-item failures."""
        ...
