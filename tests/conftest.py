"""Shared fixtures."""

import pytest

from trainee_notifications.history.service import HistoryStore
from trainee_notifications.logging.context import clear_log_context
from trainee_notifications.persistence import close_database, init_database

from tests.helpers import make_renderer


@pytest.fixture
def database():
    """Fresh in-memory history database."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def history(database):
    return HistoryStore(make_renderer())


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Minimal valid environment for load_config()."""
    for name in (
        "SMTP_USER",
        "SMTP_PASS",
        "NOTIFICATIONS_WHITELIST",
        "NOTIFICATIONS_EMAIL_ENABLED",
        "NOTIFICATIONS_IN_APP_ENABLED",
        "LOG_LEVEL",
        "DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("EMAIL_SENDER", "no-reply@example.com")
    return monkeypatch
