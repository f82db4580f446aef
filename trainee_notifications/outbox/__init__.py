"""Delivery outbox for SCHEDULED notifications whose jobs did not run."""

from .channel import LocalQueueChannel
from .models import MAX_BATCH_SIZE, BatchResult, FailedItem, OutboxMessage, QueueChannel
from .service import OutboxService
from .sweeper import OutboxConsumer, OverdueNotificationSweeper, SweepResult
from .tracing import TRACE_HEADER_ATTRIBUTE, current_trace_header, trace_context

__all__ = [
    "OutboxService",
    "LocalQueueChannel",
    "QueueChannel",
    "OutboxMessage",
    "BatchResult",
    "FailedItem",
    "MAX_BATCH_SIZE",
    "OverdueNotificationSweeper",
    "OutboxConsumer",
    "SweepResult",
    "trace_context",
    "current_trace_header",
    "TRACE_HEADER_ATTRIBUTE",
]
