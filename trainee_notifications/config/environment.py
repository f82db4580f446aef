"""Environment variable loading and validation."""

import os
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        email_sender: str,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        app_domain: Optional[str] = None,
        database_url: Optional[str] = None,
        reference_service_url: Optional[str] = None,
        accounts_service_url: Optional[str] = None,
        whitelist: Optional[List[str]] = None,
        email_enabled: Optional[bool] = None,
        in_app_enabled: Optional[bool] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.email_sender = email_sender
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.app_domain = app_domain or "https://trainee.tis.nhs.uk"
        self.database_url = database_url or "sqlite:///./data/notifications.db"
        self.reference_service_url = reference_service_url
        self.accounts_service_url = accounts_service_url
        # None means "not set": the YAML dispatch settings apply
        self.whitelist = whitelist
        self.email_enabled = email_enabled
        self.in_app_enabled = in_app_enabled
        self.log_level = log_level
        self.environment = environment or "local"


def load_environment_config() -> EnvironmentConfig:
    """Load and validate environment variables.

    Required:
    - SMTP_HOST, SMTP_PORT: SMTP server
    - EMAIL_SENDER: From address for outgoing email

    Optional:
    - SMTP_USER / SMTP_PASS: SMTP credentials (both or neither)
    - APP_DOMAIN: base URL of the trainee app, exposed to templates as ``domain``
    - DATABASE_URL: history store URL (default: sqlite:///./data/notifications.db)
    - REFERENCE_SERVICE_URL: reference data service for local office contacts
    - ACCOUNTS_SERVICE_URL: account directory service
    - NOTIFICATIONS_WHITELIST: comma separated subject ids
    - NOTIFICATIONS_EMAIL_ENABLED / NOTIFICATIONS_IN_APP_ENABLED: booleans
    - LOG_LEVEL, ENVIRONMENT

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    email_sender = os.getenv("EMAIL_SENDER")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    log_level = os.getenv("LOG_LEVEL")

    for name, value in (
        ("SMTP_HOST", smtp_host),
        ("SMTP_PORT", smtp_port_str),
        ("EMAIL_SENDER", email_sender),
    ):
        if not value:
            errors.append(f"Missing required environment variable: {name}")

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if not 1 <= smtp_port <= 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if email_sender:
        try:
            email_sender = validate_email(email_sender, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid EMAIL_SENDER '{email_sender}': {e}")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if bool(smtp_user) != bool(smtp_pass):
        errors.append("SMTP_USER and SMTP_PASS must either both be set or both be unset.")

    email_enabled = _parse_bool("NOTIFICATIONS_EMAIL_ENABLED", errors)
    in_app_enabled = _parse_bool("NOTIFICATIONS_IN_APP_ENABLED", errors)

    whitelist_str = os.getenv("NOTIFICATIONS_WHITELIST")
    whitelist = None
    if whitelist_str is not None:
        whitelist = [entry.strip() for entry in whitelist_str.split(",") if entry.strip()]

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your settings",
                "Ensure SMTP_HOST, SMTP_PORT and EMAIL_SENDER are set",
                "Use true/false for the NOTIFICATIONS_*_ENABLED flags",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        email_sender=email_sender,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        app_domain=os.getenv("APP_DOMAIN"),
        database_url=os.getenv("DATABASE_URL"),
        reference_service_url=os.getenv("REFERENCE_SERVICE_URL"),
        accounts_service_url=os.getenv("ACCOUNTS_SERVICE_URL"),
        whitelist=whitelist,
        email_enabled=email_enabled,
        in_app_enabled=in_app_enabled,
        log_level=log_level,
        environment=os.getenv("ENVIRONMENT"),
    )


def _parse_bool(name: str, errors: List[str]) -> Optional[bool]:
    """Read an optional boolean variable, recording an error if malformed."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    errors.append(f"Invalid {name}: '{raw}'. Must be true or false.")
    return None
