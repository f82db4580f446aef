"""Builds the service graph from configuration."""

from dataclasses import dataclass
from typing import Optional

from apscheduler.schedulers.base import BaseScheduler

from trainee_notifications.clients.accounts import AccountDirectory, HttpAccountDirectory
from trainee_notifications.clients.reference import ReferenceClient
from trainee_notifications.config.environment import EnvironmentConfig
from trainee_notifications.config.exceptions import ConfigurationError
from trainee_notifications.config.models import AppConfig
from trainee_notifications.eligibility.applier import DecisionApplier
from trainee_notifications.eligibility.engine import EligibilityEngine
from trainee_notifications.eligibility.placements import PlacementNotificationService
from trainee_notifications.eligibility.programmes import ProgrammeMembershipNotificationService
from trainee_notifications.events.handlers import NotificationEventHandler
from trainee_notifications.history.service import HistoryStore
from trainee_notifications.notifications.accounts import UserAccountService
from trainee_notifications.notifications.dispatch import DispatchPolicy
from trainee_notifications.notifications.email_service import EmailService
from trainee_notifications.notifications.executor import NotificationJobExecutor
from trainee_notifications.notifications.in_app import InAppService
from trainee_notifications.notifications.smtp_client import SMTPClient
from trainee_notifications.notifications.templates import TemplateRenderer
from trainee_notifications.outbox.channel import LocalQueueChannel
from trainee_notifications.outbox.service import OutboxService
from trainee_notifications.outbox.sweeper import OutboxConsumer, OverdueNotificationSweeper
from trainee_notifications.resend.contact_details import ContactDetailsService
from trainee_notifications.resend.migration import FailedNotificationMigration
from trainee_notifications.scheduler.registry import ScheduledJobRegistry
from trainee_notifications.scheduler.service import SchedulerService, build_scheduler

SWEEP_JOB_ID = "overdue-sweep"
OUTBOX_JOB_ID = "outbox-consumer"


@dataclass
class Application:
    """The wired services."""

    history: HistoryStore
    registry: ScheduledJobRegistry
    scheduler_service: SchedulerService
    executor: NotificationJobExecutor
    email_service: EmailService
    outbox: OutboxService
    channel: LocalQueueChannel
    sweeper: OverdueNotificationSweeper
    consumer: OutboxConsumer
    events: NotificationEventHandler
    migration: FailedNotificationMigration

    def register_periodic_jobs(self, sweep_interval_seconds: int) -> None:
        self.scheduler_service.add_periodic(
            SWEEP_JOB_ID, "Overdue notification sweep", self.sweeper.run, sweep_interval_seconds
        )
        self.scheduler_service.add_periodic(
            OUTBOX_JOB_ID, "Outbox consumer", self.consumer.run, 60
        )


def build_application(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    scheduler: Optional[BaseScheduler] = None,
    account_directory: Optional[AccountDirectory] = None,
    reference_client: Optional[ReferenceClient] = None,
    smtp_client: Optional[SMTPClient] = None,
    renderer: Optional[TemplateRenderer] = None,
) -> Application:
    """Wire every service. The database must already be initialised.

    Raises:
        ConfigurationError: If no account directory can be built
    """
    schedules = app_config.schedules
    zone = app_config.zone

    if account_directory is None:
        if not env_config.accounts_service_url:
            raise ConfigurationError(
                "ACCOUNTS_SERVICE_URL is required to resolve email recipients",
                suggestions=["Set ACCOUNTS_SERVICE_URL in the environment or .env file"],
            )
        account_directory = HttpAccountDirectory(env_config.accounts_service_url)
    if reference_client is None and env_config.reference_service_url:
        reference_client = ReferenceClient(env_config.reference_service_url)

    renderer = renderer or TemplateRenderer(app_config.templates.directory)
    history = HistoryStore(renderer)
    dispatch = DispatchPolicy.from_config(app_config.dispatch)
    accounts = UserAccountService(account_directory, schedules.account_cache_refresh_seconds)

    email_service = EmailService(
        smtp_client or SMTPClient(env_config, use_tls=app_config.email.use_tls),
        renderer,
        history,
        accounts,
        app_config.email,
        env_config,
        zone,
    )
    in_app_service = InAppService(history)
    executor = NotificationJobExecutor(history, email_service, in_app_service, dispatch, app_config)

    scheduler = scheduler or build_scheduler(schedules.job_misfire_grace_seconds)
    registry = ScheduledJobRegistry(scheduler, executor, zone, schedules.job_misfire_grace_seconds)

    engine = EligibilityEngine(history, zone, schedules.missed_milestone_delay_seconds)
    applier = DecisionApplier(history, registry, in_app_service, dispatch, app_config)

    channel = LocalQueueChannel(app_config.outbox.max_receive_count)
    outbox = OutboxService(
        channel, registry, history, app_config.outbox.destination, app_config.outbox.batch_size
    )

    events = NotificationEventHandler(
        PlacementNotificationService(engine, applier, reference_client),
        ProgrammeMembershipNotificationService(engine, applier, reference_client),
        ContactDetailsService(history, email_service, dispatch, accounts),
    )

    return Application(
        history=history,
        registry=registry,
        scheduler_service=SchedulerService(scheduler),
        executor=executor,
        email_service=email_service,
        outbox=outbox,
        channel=channel,
        sweeper=OverdueNotificationSweeper(history, outbox, schedules.overdue_grace_seconds),
        consumer=OutboxConsumer(channel, outbox),
        events=events,
        migration=FailedNotificationMigration(history, email_service, registry),
    )
