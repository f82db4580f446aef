"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from trainee_notifications.domain.notification_types import (
    CATALOG,
    MessageType,
    NotificationType,
)

from .duration import DurationParseError, parse_duration, validate_duration_range

# Channel keys used in the template_versions map
CHANNEL_KEYS = {MessageType.EMAIL: "email", MessageType.IN_APP: "in-app"}


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class TemplatesConfig(BaseModel):
    """Location of the Jinja2 message templates."""

    directory: str = Field(
        "templates",
        min_length=1,
        description="Directory laid out as <channel>/<template>/<version>/",
    )


class OutboxConfig(BaseModel):
    """Delivery outbox settings."""

    destination: str = Field("notifications-outbox", min_length=1)
    batch_size: int = Field(10, ge=1, le=10, description="Items per channel batch")
    max_receive_count: int = Field(
        3, ge=1, le=20, description="Deliveries attempted before dead-lettering"
    )


class ScheduleConfig(BaseModel):
    """Timing of periodic jobs and milestone scheduling."""

    overdue_sweep_interval: str = Field("5m", description="Interval between overdue sweeps")
    overdue_grace_seconds: int = Field(
        300, ge=0, description="Age a SCHEDULED email must reach before the sweep sends it"
    )
    missed_milestone_delay_seconds: int = Field(
        60, ge=0, le=3600, description="Buffer added to 'now' for missed milestones"
    )
    job_misfire_grace_seconds: int = Field(3600, ge=1)
    account_cache_refresh: str = Field("15m", description="Minimum age before refreshing accounts")

    overdue_sweep_interval_seconds: Optional[int] = None
    account_cache_refresh_seconds: Optional[int] = None

    @field_validator("overdue_sweep_interval", "account_cache_refresh")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        """Validate duration strings."""
        try:
            validate_duration_range(parse_duration(v), min_seconds=60, max_seconds=86400)
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_seconds(self):
        """Compute derived second values."""
        self.overdue_sweep_interval_seconds = parse_duration(self.overdue_sweep_interval)
        self.account_cache_refresh_seconds = parse_duration(self.account_cache_refresh)
        return self


class DispatchConfig(BaseModel):
    """Which messages are really dispatched rather than only logged."""

    whitelist: List[str] = Field(
        default_factory=list, description="Subject ids that always receive messages"
    )
    email_enabled: bool = False
    in_app_enabled: bool = False

    @field_validator("whitelist")
    @classmethod
    def normalise_whitelist(cls, v: List[str]) -> List[str]:
        """Strip entries and drop blanks."""
        return [entry.strip() for entry in v if entry and entry.strip()]


class EmailConfig(BaseModel):
    """Email delivery settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    sender_name: str = Field("TIS Self-Service", min_length=1)
    max_retries: int = Field(2, ge=0, le=5, description="SMTP retries after the first attempt")
    retry_initial_delay: float = Field(1.0, ge=0.0, le=30.0, description="Seconds before first retry")
    retry_backoff_multiplier: float = Field(2.0, ge=1.0, le=5.0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root application configuration."""

    timezone: str = Field("Europe/London", description="IANA zone for civil date arithmetic")
    template_versions: Dict[str, Dict[str, str]] = Field(
        default_factory=dict,
        description="Template name -> channel ('email' / 'in-app') -> version",
    )
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)
    outbox: OutboxConfig = Field(default_factory=OutboxConfig)
    schedules: ScheduleConfig = Field(default_factory=ScheduleConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the zone name against the tz database."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: '{v}'") from e
        return v

    @field_validator("template_versions")
    @classmethod
    def validate_channels(cls, v: Dict[str, Dict[str, str]]) -> Dict[str, Dict[str, str]]:
        """Only the known channel keys may appear."""
        valid = set(CHANNEL_KEYS.values())
        for template_name, versions in v.items():
            unknown = set(versions) - valid
            if unknown:
                raise ValueError(
                    f"Template '{template_name}' has unknown channel(s): "
                    f"{', '.join(sorted(unknown))}"
                )
        return v

    @model_validator(mode="after")
    def validate_active_types_have_versions(self):
        """Every active notification type needs a version for its channel."""
        missing = []
        for notification_type, behaviour in CATALOG.items():
            if not behaviour.active:
                continue
            channel_key = CHANNEL_KEYS[behaviour.channel]
            if not self.template_versions.get(behaviour.template_name, {}).get(channel_key):
                missing.append(f"{behaviour.template_name} ({channel_key})")

        if missing:
            raise ValueError(
                f"Missing template versions for: {', '.join(sorted(missing))}"
            )
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def get_template_version(
        self, notification_type: NotificationType, channel: Optional[MessageType] = None
    ) -> Optional[str]:
        """Look up the configured version of a type's template."""
        behaviour = notification_type.behaviour
        channel_key = CHANNEL_KEYS[channel or behaviour.channel]
        return self.template_versions.get(behaviour.template_name, {}).get(channel_key)
