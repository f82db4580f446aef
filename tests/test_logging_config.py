"""Tests for logging configuration and formatters."""

import json
import logging
import sys
from datetime import datetime, timezone

import pytest

from trainee_notifications.domain.notification_types import NotificationType
from trainee_notifications.logging import ComponentLoggerAdapter, get_logger
from trainee_notifications.logging.config import (
    SERVICE_NAME,
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from trainee_notifications.logging.context import clear_log_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def restore_root_logger():
    """Restore root logger handlers and level changed by configure_logging."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield root_logger
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
    logging.getLogger("apscheduler").setLevel(logging.NOTSET)


@pytest.fixture
def logger():
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    return test_logger


def make_record(logger, message="Test message", extra=None):
    return logger.makeRecord(
        "test", logging.INFO, "test.py", 1, message, (), None, extra=extra
    )


def key_value_formatter():
    return KeyValueFormatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ============================================================================
# JSON Formatter Tests
# ============================================================================


class TestJSONFormatter:
    def test_mandatory_fields(self, logger):
        log_obj = json.loads(JSONFormatter().format(make_record(logger)))

        assert log_obj["level"] == "INFO"
        assert log_obj["logger"] == "test"
        assert log_obj["message"] == "Test message"
        assert "timestamp" in log_obj

    def test_extra_fields(self, logger):
        record = make_record(
            logger, extra={"event": "outbox.batch.submitted", "count": 10, "flag": True}
        )

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["event"] == "outbox.batch.submitted"
        assert log_obj["count"] == 10
        assert log_obj["flag"] is True

    def test_enum_and_datetime_values(self, logger):
        record = make_record(
            logger,
            extra={
                "notification_type": NotificationType.PROGRAMME_DAY_ONE,
                "run_at": datetime(2025, 6, 1, 23, 0, tzinfo=timezone.utc),
            },
        )

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["notification_type"] == "PROGRAMME_DAY_ONE"
        assert log_obj["run_at"] == "2025-06-01T23:00:00+00:00"

    def test_timestamp_format(self, logger):
        """Timestamps are ISO-8601 UTC with millisecond precision."""
        timestamp = json.loads(JSONFormatter().format(make_record(logger)))["timestamp"]

        assert timestamp.endswith("Z")
        assert "T" in timestamp
        assert len(timestamp) == 24  # 2025-01-15T10:00:00.123Z

    def test_no_duplicate_standard_fields(self, logger):
        log_obj = json.loads(
            JSONFormatter().format(make_record(logger, extra={"event": "test.event"}))
        )

        assert "name" not in log_obj
        assert "levelname" not in log_obj
        assert log_obj["event"] == "test.event"

    def test_exception_info(self, logger):
        try:
            raise RuntimeError("SMTP down")
        except RuntimeError:
            record = logger.makeRecord(
                "test", logging.ERROR, "test.py", 1, "Send failed", (), sys.exc_info()
            )

        log_obj = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: SMTP down" in log_obj["exc_info"]


# ============================================================================
# Key-Value Formatter Tests
# ============================================================================


class TestKeyValueFormatter:
    def test_basic_output(self, logger):
        output = key_value_formatter().format(make_record(logger))

        assert "[INFO]" in output
        assert "test: Test message" in output

    def test_extras_as_sorted_pairs(self, logger):
        record = make_record(logger, extra={"event": "scheduler.job.added", "count": 4})

        output = key_value_formatter().format(record)

        assert output.endswith("count=4 event=scheduler.job.added")

    def test_value_formatting(self, logger):
        record = make_record(
            logger, extra={"enabled": False, "address": None, "reason": "no account found"}
        )

        output = key_value_formatter().format(record)

        assert "enabled=false" in output
        assert "address=null" in output
        assert 'reason="no account found"' in output

    def test_service_fields_are_omitted(self, logger):
        record = make_record(logger)
        ContextualFilter(service="svc", environment="test").filter(record)

        output = key_value_formatter().format(record)

        assert "service=" not in output
        assert "environment=" not in output


# ============================================================================
# Filter Tests
# ============================================================================


class TestContextualFilter:
    def test_adds_static_fields(self, logger):
        record = make_record(logger)

        assert ContextualFilter(service="test-service", environment="test").filter(record)

        assert record.service == "test-service"
        assert record.environment == "test"

    def test_defaults(self, logger):
        record = make_record(logger)
        ContextualFilter().filter(record)

        assert record.service == SERVICE_NAME
        assert record.environment == "local"

    def test_adds_context_fields(self, logger):
        with log_context(subject_id="47165", job_id="PROGRAMME_DAY_ONE-9"):
            record = make_record(logger)
            ContextualFilter().filter(record)

        assert record.subject_id == "47165"
        assert record.job_id == "PROGRAMME_DAY_ONE-9"

    def test_explicit_extra_wins_over_context(self, logger):
        with log_context(subject_id="47165"):
            record = make_record(logger, extra={"subject_id": "12345"})
            ContextualFilter().filter(record)

        assert record.subject_id == "12345"

    def test_full_pipeline(self, logger):
        """Context, filter and JSON formatter together."""
        with log_context(subject_id="47165", reference_id="315"):
            record = make_record(
                logger, "Scheduling milestone", extra={"event": "scheduler.job.added"}
            )
            ContextualFilter(service=SERVICE_NAME, environment="test").filter(record)
            log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["message"] == "Scheduling milestone"
        assert log_obj["event"] == "scheduler.job.added"
        assert log_obj["service"] == SERVICE_NAME
        assert log_obj["environment"] == "test"
        assert log_obj["subject_id"] == "47165"
        assert log_obj["reference_id"] == "315"


# ============================================================================
# Logger Factory and Configuration Tests
# ============================================================================


class TestGetLogger:
    def test_plain_logger(self):
        assert isinstance(get_logger("tests.plain"), logging.Logger)

    def test_component_adapter_merges_extra(self):
        adapter = get_logger("tests.component", component="outbox")

        assert isinstance(adapter, ComponentLoggerAdapter)
        _, kwargs = adapter.process("msg", {"extra": {"event": "outbox.batch.submitted"}})
        assert kwargs["extra"] == {"component": "outbox", "event": "outbox.batch.submitted"}

    def test_call_extra_wins(self):
        adapter = get_logger("tests.component", component="outbox")

        _, kwargs = adapter.process("msg", {"extra": {"component": "sweeper"}})

        assert kwargs["extra"]["component"] == "sweeper"


class TestConfigureLogging:
    def test_invalid_level(self):
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="INVALID")

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid log format"):
            configure_logging(format_type="invalid")

    def test_json_format(self, restore_root_logger):
        configure_logging(level="DEBUG", format_type="json", environment="test")

        handler = restore_root_logger.handlers[0]
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(handler.formatter, JSONFormatter)
        assert restore_root_logger.level == logging.DEBUG

    def test_key_value_format(self, restore_root_logger):
        configure_logging(level="info", format_type="key-value", environment="test")

        handler = restore_root_logger.handlers[0]
        assert isinstance(handler.formatter, KeyValueFormatter)
        assert any(
            isinstance(f, ContextualFilter) and f.environment == "test" for f in handler.filters
        )

    def test_apscheduler_quietened(self, restore_root_logger):
        configure_logging(level="DEBUG")

        assert logging.getLogger("apscheduler").level == logging.WARNING
