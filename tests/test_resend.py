"""Unit tests for contact-change resends and the failed notification migration."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest

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
from trainee_notifications.notifications.models import MigrationIncompleteError, ResendError
from trainee_notifications.resend import (
    ContactDetailsService,
    FailedNotificationMigration,
    needs_resend,
)
from trainee_notifications.scheduler import ScheduledJobRegistry, build_scheduler

from tests.helpers import (
    NOW,
    FakeSMTPClient,
    InMemoryAccountDirectory,
    fixed_clock,
    make_env_config,
    make_renderer,
)

LONDON = ZoneInfo("Europe/London")


@pytest.fixture
def smtp():
    return FakeSMTPClient()


@pytest.fixture
def accounts():
    directory = InMemoryAccountDirectory()
    directory.add("47165", "acc-1", "new@example.com", family_name="Gilliam", given_name="A")
    return UserAccountService(directory)


@pytest.fixture
def email_service(history, smtp, accounts):
    return EmailService(
        smtp,
        make_renderer(),
        history,
        accounts,
        EmailConfig(max_retries=0),
        make_env_config(),
        LONDON,
        sleep=Mock(),
    )


def save_failed(history, notification_type=NotificationType.WELCOME, address="old@example.com",
                channel=MessageType.EMAIL, reference=None, variables=None, last_retry=None):
    return history.save(
        NotificationRecord(
            reference=reference,
            type=notification_type,
            recipient=Recipient(subject_id="47165", channel=channel, address=address),
            template=TemplateInfo(
                name=notification_type.template_name, version="v1.0.0", variables=variables
            ),
            sent_at=NOW - timedelta(days=2),
            status=NotificationStatus.FAILED,
            status_detail="mailbox unavailable",
            last_retry=last_retry,
        )
    )


# ============================================================================
# Contact Details Tests
# ============================================================================


class TestNeedsResend:
    def test_different_address(self, history):
        assert needs_resend(save_failed(history), "new@example.com")

    def test_same_address_ignoring_case(self, history):
        assert not needs_resend(save_failed(history), " OLD@example.com ")

    def test_missing_address(self, history):
        assert needs_resend(save_failed(history, address=None), "new@example.com")

    def test_in_app_never_resent(self, history):
        record = save_failed(
            history, NotificationType.E_PORTFOLIO, address=None, channel=MessageType.IN_APP
        )

        assert not needs_resend(record, "new@example.com")


class TestContactDetailsService:
    """Tests for ContactDetailsService.update_contact."""

    def test_resends_failed_emails_to_new_address(self, history, email_service, smtp):
        first = save_failed(history)
        second = save_failed(history, NotificationType.GMC_UPDATED, address=None)
        service = ContactDetailsService(history, email_service)

        resent = service.update_contact("47165", "new@example.com")

        assert len(resent) == 2
        assert [m["To"] for m in smtp.sent] == ["new@example.com", "new@example.com"]
        assert history.get(first.id) is None
        assert history.get(second.id) is None
        assert all(r.last_retry is not None for r in resent)

    def test_same_address_is_not_resent(self, history, email_service, smtp):
        record = save_failed(history, address="new@example.com")

        resent = ContactDetailsService(history, email_service).update_contact(
            "47165", "NEW@example.com"
        )

        assert resent == []
        assert smtp.attempts == 0
        assert history.get(record.id).status == NotificationStatus.FAILED

    def test_blank_address_is_ignored(self, history, email_service, smtp):
        save_failed(history)

        assert ContactDetailsService(history, email_service).update_contact("47165", "  ") == []
        assert smtp.attempts == 0

    def test_first_failure_aborts(self, history, email_service, smtp):
        save_failed(history)
        save_failed(history, NotificationType.GMC_UPDATED)
        smtp.failures = 1

        with pytest.raises(ResendError) as exc_info:
            ContactDetailsService(history, email_service).update_contact("47165", "new@example.com")

        assert exc_info.value.subject_id == "47165"
        assert smtp.attempts == 1
        failed = history.find_all_failed_for_subject("47165")
        assert len(failed) == 2

    def test_log_only_dispatch(self, history, email_service, smtp):
        record = save_failed(history)
        service = ContactDetailsService(history, email_service, dispatch=DispatchPolicy())

        resent = service.update_contact("47165", "new@example.com")

        assert smtp.sent == []
        assert resent[0].status == NotificationStatus.SENT
        assert history.get(record.id) is None

    def test_invalidates_account_cache(self, history, email_service):
        accounts = Mock()
        service = ContactDetailsService(history, email_service, accounts=accounts)

        service.update_contact("47165", "new@example.com")

        accounts.invalidate.assert_called_once_with()


# ============================================================================
# Migration Tests
# ============================================================================


class TestFailedNotificationMigration:
    """Tests for the one-shot failed notification migration."""

    @pytest.fixture
    def registry(self):
        return ScheduledJobRegistry(build_scheduler(), Mock(), LONDON, clock=fixed_clock())

    @pytest.fixture
    def migration(self, history, email_service, registry):
        return FailedNotificationMigration(history, email_service, registry, clock=fixed_clock())

    def test_direct_email_is_resent(self, migration, history, smtp):
        record = save_failed(history)

        result = migration.run()

        assert result.resent == 1
        assert smtp.sent[0]["To"] == "old@example.com"
        assert history.get(record.id) is None
        (replacement,) = history.find_all_for_subject("47165")
        assert replacement.status == NotificationStatus.SENT
        assert replacement.last_retry is not None

    def test_future_milestone_is_rescheduled(self, migration, history, registry):
        record = save_failed(
            history,
            NotificationType.PROGRAMME_UPDATED_WEEK_4,
            reference=ReferenceInfo(type=ReferenceType.PROGRAMME_MEMBERSHIP, id="9"),
            variables={"startDate": "2025-06-02", "programmeName": "Cardiology"},
        )

        result = migration.run()

        assert result.rescheduled == 1
        assert history.get(record.id) is None
        job = registry.get_job("PROGRAMME_UPDATED_WEEK_4-9")
        # 28 days before 2 June, midnight in London (BST)
        assert job.run_at == datetime(2025, 5, 4, 23, 0, tzinfo=timezone.utc)

        replacement = history.get(job.payload["historyId"])
        assert replacement.status == NotificationStatus.SCHEDULED
        assert replacement.recipient.address is None
        assert replacement.last_retry == NOW
        assert replacement.template.variables["programmeName"] == "Cardiology"

    def test_past_milestone_fires_now(self, migration, history, registry):
        save_failed(
            history,
            NotificationType.PLACEMENT_UPDATED_WEEK_12,
            reference=ReferenceInfo(type=ReferenceType.PLACEMENT, id="315"),
            variables={"startDate": "2025-02-01"},
        )

        migration.run()

        assert registry.get_job("PLACEMENT_UPDATED_WEEK_12-315").run_at == NOW

    def test_cct_anchored_milestone(self, migration, history, registry):
        save_failed(
            history,
            NotificationType.PROGRAMME_POG_MONTH_12,
            reference=ReferenceInfo(type=ReferenceType.PROGRAMME_MEMBERSHIP, id="9"),
            variables={"cctDate": "2026-06-01", "startDate": "2020-08-05"},
        )

        migration.run()

        assert registry.get_job("PROGRAMME_POG_MONTH_12-9").run_at == datetime(
            2025, 5, 31, 23, 0, tzinfo=timezone.utc
        )

    def test_already_retried_records_are_left_alone(self, migration, history, smtp):
        save_failed(history, last_retry=NOW - timedelta(days=1))

        result = migration.run()

        assert result.resent == 0
        assert smtp.attempts == 0

    def test_incomplete_migration_raises_after_sweep(self, migration, history, smtp):
        broken = save_failed(
            history,
            NotificationType.PROGRAMME_UPDATED_WEEK_4,
            reference=ReferenceInfo(type=ReferenceType.PROGRAMME_MEMBERSHIP, id="9"),
            variables={"programmeName": "Cardiology"},
        )
        direct = save_failed(history)

        with pytest.raises(MigrationIncompleteError) as exc_info:
            migration.run()

        assert exc_info.value.failed_ids == [broken.id]
        assert history.get(broken.id).status == NotificationStatus.FAILED
        assert history.get(direct.id) is None
        assert len(smtp.sent) == 1

    def test_superseded_failure_is_dropped(self, migration, history, registry, smtp):
        reference = ReferenceInfo(type=ReferenceType.PLACEMENT, id="315")
        failed = save_failed(
            history,
            NotificationType.PLACEMENT_UPDATED_WEEK_12,
            reference=reference,
            variables={"startDate": "2025-06-02"},
        )
        sent = history.save(
            NotificationRecord(
                reference=reference,
                type=NotificationType.PLACEMENT_UPDATED_WEEK_12,
                recipient=Recipient(
                    subject_id="47165", channel=MessageType.EMAIL, address="new@example.com"
                ),
                template=TemplateInfo(
                    name=NotificationType.PLACEMENT_UPDATED_WEEK_12.template_name,
                    version="v1.0.0",
                    variables={"startDate": "2025-06-02"},
                ),
                sent_at=NOW - timedelta(days=1),
                status=NotificationStatus.SENT,
            )
        )

        result = migration.run()

        assert result.skipped == 1
        assert result.rescheduled == 0
        assert registry.get_job("PLACEMENT_UPDATED_WEEK_12-315") is None
        assert history.get(failed.id) is None
        assert [r.id for r in history.find_all_for_subject("47165")] == [sent.id]
        assert smtp.attempts == 0

    def test_duplicate_failures_are_rescheduled_once(self, migration, history, registry):
        for _ in range(2):
            save_failed(
                history,
                NotificationType.PLACEMENT_UPDATED_WEEK_12,
                reference=ReferenceInfo(type=ReferenceType.PLACEMENT, id="315"),
                variables={"startDate": "2025-06-02"},
            )

        result = migration.run()

        assert result.rescheduled == 1
        assert result.skipped == 1
        (remaining,) = history.find_all_for_subject("47165")
        assert remaining.status == NotificationStatus.SCHEDULED
        assert registry.get_job("PLACEMENT_UPDATED_WEEK_12-315") is not None
