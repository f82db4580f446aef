"""Configuration management for the trainee notification service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import apply_environment_overrides, load_config, parse_app_config, validate_config_file
from .models import (
    CHANNEL_KEYS,
    AppConfig,
    DispatchConfig,
    EmailConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    OutboxConfig,
    ScheduleConfig,
    TemplatesConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_app_config",
    "apply_environment_overrides",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "DispatchConfig",
    "EmailConfig",
    "LoggingConfig",
    "OutboxConfig",
    "ScheduleConfig",
    "TemplatesConfig",
    "EnvironmentConfig",
    "CHANNEL_KEYS",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
