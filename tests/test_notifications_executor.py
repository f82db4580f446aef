"""Unit tests for NotificationJobExecutor."""

from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest

from trainee_notifications.clients import ClientHTTPError
from trainee_notifications.config.models import EmailConfig
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
from trainee_notifications.notifications.accounts import UserAccountService
from trainee_notifications.notifications.dispatch import DispatchPolicy
from trainee_notifications.notifications.email_service import EmailService
from trainee_notifications.notifications.executor import NotificationJobExecutor
from trainee_notifications.notifications.in_app import InAppService
from trainee_notifications.notifications.models import (
    NotificationValidationError,
    RecipientNotFoundError,
    SendStatus,
)

from tests.helpers import (
    NOW,
    FakeSMTPClient,
    InMemoryAccountDirectory,
    fixed_clock,
    make_app_config,
    make_env_config,
    make_renderer,
)

REFERENCE = ReferenceInfo(type=ReferenceType.PROGRAMME_MEMBERSHIP, id="9")


@pytest.fixture
def smtp():
    return FakeSMTPClient()


@pytest.fixture
def executor(history, smtp):
    directory = InMemoryAccountDirectory()
    directory.add("47165", "acc-1", "trainee@example.com", family_name="Gilliam", given_name="A")
    email_service = EmailService(
        smtp,
        make_renderer(),
        history,
        UserAccountService(directory),
        EmailConfig(max_retries=0),
        make_env_config(),
        ZoneInfo("Europe/London"),
        sleep=Mock(),
    )
    return NotificationJobExecutor(
        history,
        email_service,
        InAppService(history, clock=fixed_clock()),
        DispatchPolicy(email_enabled=True, in_app_enabled=True),
        make_app_config(),
    )


def scheduled_record(history, notification_type, channel=MessageType.EMAIL, subject_id="47165"):
    return history.save(
        NotificationRecord(
            reference=REFERENCE,
            type=notification_type,
            recipient=Recipient(subject_id=subject_id, channel=channel),
            template=TemplateInfo(name=notification_type.template_name, version="v1.0.0"),
            sent_at=NOW,
            status=NotificationStatus.SCHEDULED,
        )
    )


def job_data(notification_type, history_id=None, subject_id="47165"):
    data = {
        "subjectId": subject_id,
        "notificationType": notification_type.value,
        "referenceType": "PROGRAMME_MEMBERSHIP",
        "referenceId": "9",
        "variables": {"programmeName": "Cardiology"},
    }
    if history_id:
        data["historyId"] = history_id
    return data


class TestNotificationJobExecutor:
    """Test suite for NotificationJobExecutor.execute."""

    def test_email_job_sends_and_records(self, executor, smtp, history):
        outcome = executor.execute("PROGRAMME_CREATED-9", job_data(NotificationType.PROGRAMME_CREATED))

        assert outcome.is_success()
        assert len(smtp.sent) == 1
        stored = history.get(outcome.history_id)
        assert stored.status == NotificationStatus.SENT
        assert stored.reference == REFERENCE

    def test_history_backed_email_job(self, executor, history):
        record = scheduled_record(history, NotificationType.PROGRAMME_DAY_ONE)

        outcome = executor.execute(
            "OUTBOX_" + record.id, job_data(NotificationType.PROGRAMME_DAY_ONE, record.id)
        )

        assert outcome.is_success()
        assert history.get(record.id).status == NotificationStatus.SENT

    def test_record_no_longer_scheduled_is_already_handled(self, executor, smtp, history):
        record = scheduled_record(history, NotificationType.PROGRAMME_DAY_ONE)
        history.update_status(record.id, NotificationStatus.SENT)

        outcome = executor.execute("x", job_data(NotificationType.PROGRAMME_DAY_ONE, record.id))

        assert outcome.status == SendStatus.ALREADY_HANDLED
        assert smtp.attempts == 0

    def test_deleted_record_is_already_handled(self, executor, smtp):
        outcome = executor.execute("x", job_data(NotificationType.PROGRAMME_DAY_ONE, "missing"))

        assert outcome.status == SendStatus.ALREADY_HANDLED
        assert smtp.attempts == 0

    def test_history_backed_in_app_becomes_unread(self, executor, history):
        record = scheduled_record(history, NotificationType.DAY_ONE, MessageType.IN_APP)

        outcome = executor.execute("x", job_data(NotificationType.DAY_ONE, record.id))

        assert outcome.is_success()
        assert history.get(record.id).status == NotificationStatus.UNREAD

    def test_in_app_job_creates_record(self, executor, history):
        outcome = executor.execute("x", job_data(NotificationType.E_PORTFOLIO))

        stored = history.get(outcome.history_id)
        assert stored.status == NotificationStatus.UNREAD
        assert stored.template.variables == {"programmeName": "Cardiology"}

    def test_transport_failure_is_a_failed_outcome(self, executor, smtp, history):
        smtp.failures = 5
        record = scheduled_record(history, NotificationType.PROGRAMME_DAY_ONE)

        outcome = executor.execute("x", job_data(NotificationType.PROGRAMME_DAY_ONE, record.id))

        assert outcome.status == SendStatus.FAILED
        assert "SMTP error" in outcome.reason
        assert history.get(record.id).status == NotificationStatus.FAILED

    def test_invalid_payload_raises(self, executor):
        with pytest.raises(NotificationValidationError):
            executor.execute("x", {"notificationType": "WELCOME"})

    def test_unknown_recipient_fails_scheduled_record(self, executor, history):
        record = scheduled_record(
            history, NotificationType.PROGRAMME_DAY_ONE, subject_id="99999"
        )

        with pytest.raises(RecipientNotFoundError):
            executor.execute("x", job_data(NotificationType.PROGRAMME_DAY_ONE, record.id, "99999"))

        stored = history.get(record.id)
        assert stored.status == NotificationStatus.FAILED
        assert "No account found" in stored.status_detail

    def test_disabled_channel_logs_only(self, executor, smtp, history):
        executor.dispatch = DispatchPolicy()

        outcome = executor.execute("x", job_data(NotificationType.PROGRAMME_CREATED))

        assert outcome.is_success()
        assert smtp.sent == []
        assert history.get(outcome.history_id).status == NotificationStatus.SENT

    def test_account_directory_outage_keeps_record_scheduled(self, executor, smtp, history):
        executor.email_service.accounts.directory.list_accounts = Mock(
            side_effect=ClientHTTPError("HTTP 503: Service Unavailable", 503, "https://accounts")
        )
        record = scheduled_record(history, NotificationType.PROGRAMME_DAY_ONE)

        outcome = executor.execute("x", job_data(NotificationType.PROGRAMME_DAY_ONE, record.id))

        assert outcome.status == SendStatus.FAILED
        assert "Account lookup failed" in outcome.reason
        assert smtp.attempts == 0
        # Left for the overdue sweep to retry
        assert history.get(record.id).status == NotificationStatus.SCHEDULED
