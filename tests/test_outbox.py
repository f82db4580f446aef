"""Unit tests for the delivery outbox, the overdue sweep and the outbox consumer."""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from trainee_notifications.domain.models import (
    NotificationRecord,
    NotificationStatus,
    Recipient,
    ReferenceInfo,
    TemplateInfo,
)
from trainee_notifications.domain.notification_types import (
    MessageType,
    NotificationType,
    ReferenceType,
)
from trainee_notifications.notifications.models import (
    DeliveryError,
    RecipientNotFoundError,
    SendOutcome,
    SendStatus,
)
from trainee_notifications.outbox import (
    TRACE_HEADER_ATTRIBUTE,
    BatchResult,
    FailedItem,
    LocalQueueChannel,
    OutboxConsumer,
    OutboxMessage,
    OutboxService,
    OverdueNotificationSweeper,
    current_trace_header,
    trace_context,
)

from tests.helpers import NOW, fixed_clock

DESTINATION = "notifications-outbox"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def registry():
    registry = Mock()
    registry.execute_now.side_effect = lambda job_id, payload: SendOutcome.success(
        payload["historyId"]
    )
    return registry


@pytest.fixture
def channel():
    return LocalQueueChannel(max_receive_count=3)


@pytest.fixture
def outbox(channel, registry, history):
    return OutboxService(channel, registry, history, DESTINATION)


def save_scheduled(history, sent_at, channel=MessageType.EMAIL, notification_type=None):
    notification_type = notification_type or (
        NotificationType.PROGRAMME_DAY_ONE if channel == MessageType.EMAIL else NotificationType.DAY_ONE
    )
    return history.save(
        NotificationRecord(
            reference=ReferenceInfo(type=ReferenceType.PROGRAMME_MEMBERSHIP, id="9"),
            type=notification_type,
            recipient=Recipient(subject_id="47165", channel=channel),
            template=TemplateInfo(
                name=notification_type.template_name,
                version="v1.0.0",
                variables={"programmeName": "Cardiology"},
            ),
            sent_at=sent_at,
            status=NotificationStatus.SCHEDULED,
        )
    )


def message(history_id):
    return OutboxMessage(id=history_id, body={"historyId": history_id})


# ============================================================================
# Channel Tests
# ============================================================================


class TestLocalQueueChannel:
    """Tests for the in-process queue channel."""

    def test_send_batch_queues_messages(self, channel):
        result = channel.send_batch(DESTINATION, [message("h1"), message("h2")])

        assert result.successful == ["h1", "h2"]
        assert result.failed == []
        assert channel.pending(DESTINATION) == 2

    def test_batch_limit(self, channel):
        with pytest.raises(ValueError, match="exceeds the limit"):
            channel.send_batch(DESTINATION, [message(f"h{i}") for i in range(11)])

    def test_item_without_history_id_fails_alone(self, channel):
        result = channel.send_batch(
            DESTINATION, [message("h1"), OutboxMessage(id="bad", body={})]
        )

        assert result.successful == ["h1"]
        assert result.failed == [FailedItem("bad", "message has no historyId")]

    def test_drain_delivers_in_order(self, channel):
        channel.send_batch(DESTINATION, [message("h1"), message("h2")])
        seen = []

        handled = channel.drain(DESTINATION, lambda m: seen.append(m.history_id))

        assert handled == 2
        assert seen == ["h1", "h2"]
        assert channel.pending(DESTINATION) == 0

    def test_failing_message_is_redelivered_then_dead_lettered(self, channel):
        channel.send_batch(DESTINATION, [message("h1")])
        handler = Mock(side_effect=DeliveryError("not sent", "h1"))

        handled = channel.drain(DESTINATION, handler)

        assert handled == 0
        assert handler.call_count == 3
        assert [m.id for m in channel.dead_letters(DESTINATION)] == ["h1"]
        assert channel.pending(DESTINATION) == 0

    def test_redelivery_succeeds(self, channel):
        channel.send_batch(DESTINATION, [message("h1")])
        handler = Mock(side_effect=[DeliveryError("not sent", "h1"), None])

        assert channel.drain(DESTINATION, handler) == 1
        assert channel.dead_letters(DESTINATION) == []

    def test_destinations_are_separate(self, channel):
        channel.send_batch("other", [message("h1")])

        assert channel.pending(DESTINATION) == 0
        assert channel.pending("other") == 1


# ============================================================================
# Outbox Service Tests
# ============================================================================


class TestOutboxService:
    """Tests for OutboxService."""

    def test_batch_size_bounds(self, channel, registry, history):
        with pytest.raises(ValueError):
            OutboxService(channel, registry, history, DESTINATION, batch_size=11)

    def test_send_to_outbox_batches(self, registry, history):
        channel = Mock()
        channel.send_batch.side_effect = lambda destination, messages: BatchResult(
            successful=[m.id for m in messages]
        )
        outbox = OutboxService(channel, registry, history, DESTINATION)

        failures = outbox.send_to_outbox([f"h{i}" for i in range(23)])

        assert failures == []
        assert [len(c.args[1]) for c in channel.send_batch.call_args_list] == [10, 10, 3]

    @pytest.mark.parametrize(
        "count,batches",
        [(0, []), (1, [1]), (9, [9]), (10, [10]), (11, [10, 1]), (20, [10, 10]), (25, [10, 10, 5])],
    )
    def test_batch_sizes(self, registry, history, count, batches):
        channel = Mock()
        channel.send_batch.side_effect = lambda destination, messages: BatchResult(
            successful=[m.id for m in messages]
        )
        outbox = OutboxService(channel, registry, history, DESTINATION)

        outbox.send_to_outbox([f"h{i}" for i in range(count)])

        assert [len(c.args[1]) for c in channel.send_batch.call_args_list] == batches

    def test_failures_from_every_batch_are_returned(self, registry, history):
        channel = Mock()
        channel.send_batch.side_effect = [
            BatchResult(
                successful=[f"h{i}" for i in range(1, 10)],
                failed=[FailedItem("h0", "throttled")],
            ),
            BatchResult(successful=["h10"], failed=[FailedItem("h11", "throttled")]),
        ]
        outbox = OutboxService(channel, registry, history, DESTINATION)

        failures = outbox.send_to_outbox([f"h{i}" for i in range(12)])

        assert failures == [FailedItem("h0", "throttled"), FailedItem("h11", "throttled")]

    def test_failed_batch_counts_every_item_and_continues(self, registry, history):
        channel = Mock()
        channel.send_batch.side_effect = [
            RuntimeError("queue unavailable"),
            BatchResult(successful=["h10"]),
        ]
        outbox = OutboxService(channel, registry, history, DESTINATION)

        failures = outbox.send_to_outbox([f"h{i}" for i in range(11)])

        assert [f.reference for f in failures] == [f"h{i}" for i in range(10)]
        assert all(f.reason == "queue unavailable" for f in failures)
        assert channel.send_batch.call_count == 2

    def test_partial_batch_failure(self, outbox):
        channel = Mock()
        channel.send_batch.return_value = BatchResult(
            successful=["h1"], failed=[FailedItem("h2", "throttled")]
        )
        outbox.channel = channel

        assert outbox.send_to_outbox(["h1", "h2"]) == [FailedItem("h2", "throttled")]

    def test_empty_references(self, outbox, channel):
        assert outbox.send_to_outbox([]) == []
        assert channel.pending(DESTINATION) == 0

    def test_trace_header_is_attached(self, outbox, channel):
        with trace_context("Root=1-5759e988-bd862e3fe1be46a994272793"):
            outbox.send_to_outbox(["h1"])
        outbox.send_to_outbox(["h2"])

        received = []
        channel.drain(DESTINATION, received.append)

        assert received[0].attributes == {
            TRACE_HEADER_ATTRIBUTE: "Root=1-5759e988-bd862e3fe1be46a994272793"
        }
        assert received[1].attributes == {}

    def test_send_scheduled_executes_record(self, outbox, registry, history):
        record = save_scheduled(history, NOW - timedelta(hours=1))

        outcome = outbox.send_scheduled(record.id)

        assert outcome.is_success()
        job_id, payload = registry.execute_now.call_args.args
        assert job_id == f"OUTBOX_{record.id}"
        assert payload["historyId"] == record.id
        assert payload["notificationType"] == "PROGRAMME_DAY_ONE"
        assert payload["variables"] == {"programmeName": "Cardiology"}

    def test_send_scheduled_skips_handled_records(self, outbox, registry, history):
        record = save_scheduled(history, NOW - timedelta(hours=1))
        history.update_status(record.id, NotificationStatus.SENT)

        assert outbox.send_scheduled(record.id).status == SendStatus.ALREADY_HANDLED
        assert outbox.send_scheduled("missing").status == SendStatus.ALREADY_HANDLED
        registry.execute_now.assert_not_called()

    def test_send_scheduled_failure_raises(self, outbox, registry, history):
        record = save_scheduled(history, NOW - timedelta(hours=1))
        registry.execute_now.side_effect = None
        registry.execute_now.return_value = SendOutcome.failed("SMTP down", record.id)

        with pytest.raises(DeliveryError, match="SMTP down") as exc_info:
            outbox.send_scheduled(record.id)

        assert exc_info.value.history_id == record.id

    def test_send_scheduled_wraps_executor_errors(self, outbox, registry, history):
        record = save_scheduled(history, NOW - timedelta(hours=1))
        registry.execute_now.side_effect = RecipientNotFoundError("47165")

        with pytest.raises(DeliveryError) as exc_info:
            outbox.send_scheduled(record.id)

        assert exc_info.value.history_id == record.id
        assert isinstance(exc_info.value.__cause__, RecipientNotFoundError)


def test_trace_context_restores_previous_header():
    with trace_context("outer"):
        with trace_context("inner"):
            assert current_trace_header() == "inner"
        assert current_trace_header() == "outer"
    assert current_trace_header() is None


# ============================================================================
# Sweeper and Consumer Tests
# ============================================================================


class TestOverdueNotificationSweeper:
    """Tests for the periodic overdue sweep."""

    def test_sweep(self, outbox, channel, history):
        overdue = save_scheduled(history, NOW - timedelta(minutes=10))
        recent = save_scheduled(
            history, NOW - timedelta(minutes=1), notification_type=NotificationType.PROGRAMME_CREATED
        )
        due_in_app = save_scheduled(history, NOW - timedelta(seconds=1), MessageType.IN_APP)
        future_in_app = save_scheduled(
            history, NOW + timedelta(days=1), MessageType.IN_APP, NotificationType.E_PORTFOLIO
        )
        sweeper = OverdueNotificationSweeper(history, outbox, grace_seconds=300, clock=fixed_clock())

        result = sweeper.run()

        assert (result.displayed, result.overdue, result.failed) == (1, 1, 0)
        assert channel.pending(DESTINATION) == 1
        assert history.get(due_in_app.id).status == NotificationStatus.UNREAD
        assert history.get(future_in_app.id).status == NotificationStatus.SCHEDULED
        assert history.get(recent.id).status == NotificationStatus.SCHEDULED
        assert history.get(overdue.id).status == NotificationStatus.SCHEDULED

    def test_sweep_reports_queue_failures(self, history):
        save_scheduled(history, NOW - timedelta(hours=1))
        outbox = Mock()
        outbox.send_to_outbox.return_value = [FailedItem("h1", "queue unavailable")]

        result = OverdueNotificationSweeper(history, outbox, clock=fixed_clock()).run()

        assert result.overdue == 1
        assert result.failed == 1

    def test_nothing_to_do(self, outbox, history):
        result = OverdueNotificationSweeper(history, outbox, clock=fixed_clock()).run()

        assert (result.displayed, result.overdue, result.failed) == (0, 0, 0)


class TestOutboxConsumer:
    """Tests for draining the outbox into the send path."""

    def test_consumer_sends_queued_records(self, outbox, channel, registry, history):
        record = save_scheduled(history, NOW - timedelta(hours=1))
        outbox.send_to_outbox([record.id])

        handled = OutboxConsumer(channel, outbox).run()

        assert handled == 1
        registry.execute_now.assert_called_once()
        assert channel.pending(DESTINATION) == 0

    def test_consumer_dead_letters_repeated_failures(self, outbox, channel, registry, history):
        record = save_scheduled(history, NOW - timedelta(hours=1))
        registry.execute_now.side_effect = None
        registry.execute_now.return_value = SendOutcome.failed("SMTP down", record.id)
        outbox.send_to_outbox([record.id])

        assert OutboxConsumer(channel, outbox).run() == 0
        assert registry.execute_now.call_count == 3
        assert [m.history_id for m in channel.dead_letters(DESTINATION)] == [record.id]
