"""Unit tests for the logging infrastructure."""

from __future__ import annotations

import json
import logging
import sys
from unittest.mock import MagicMock

import pytest

from dispatch_service.core.settings import LoggingSettings
from dispatch_service.infra.logging import (
    ContextInjectingFilter,
    JSONFormatter,
    clear_log_context,
    get_lazy_logger,
    get_log_context,
    lazy,
    remove_from_log_context,
    set_log_context,
    setup_logging,
    shutdown,
)

def _record(msg: str = "Notification sent", **extra) -> logging.LogRecord:
    record = logging.LogRecord("DispatchPipeline", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLogContext:
    """Test contextvar backed log context."""

    def test_set_get_remove(self):
        set_log_context(notification_id="42", adapter="smtp")
        remove_from_log_context("adapter")

        assert get_log_context() == {"notification_id": "42"}

        clear_log_context()
        assert get_log_context() == {}

    def test_filter_injects_without_overwriting(self):
        set_log_context(notification_id="42", adapter="context")
        record = _record(adapter="explicit")

        assert ContextInjectingFilter().filter(record) is True
        assert record.notification_id == "42"
        assert record.adapter == "explicit"


@pytest.mark.unit
class TestJSONFormatter:
    """Test JSONL output."""

    def test_format_with_extras(self):
        formatter = JSONFormatter(static={"service": "dispatch-service"})

        data = json.loads(formatter.format(_record(notification_id="42")))

        assert data["level"] == "INFO"
        assert data["logger"] == "DispatchPipeline"
        assert data["message"] == "Notification sent"
        assert data["service"] == "dispatch-service"
        assert data["notification_id"] == "42"
        assert data["timestamp"].endswith("Z")
        assert "trace_id" not in data

    def test_exception_stays_on_one_line(self):
        formatter = JSONFormatter()
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), None)
            record.exc_info = sys.exc_info()

        output = formatter.format(record)

        assert "\n" not in output
        assert "RuntimeError: boom" in json.loads(output)["exception"]


@pytest.mark.unit
class TestLazyLogging:
    """Test lazy evaluation."""

    def test_callable_not_evaluated_when_disabled(self):
        logger = get_lazy_logger("lazy-test-disabled")
        logger.logger.setLevel(logging.INFO)
        expensive = MagicMock(return_value="dump")

        logger.debug(expensive)

        expensive.assert_not_called()

    def test_callable_evaluated_when_enabled(self, caplog):
        logger = get_lazy_logger("lazy-test-enabled")

        with caplog.at_level(logging.DEBUG, logger="lazy-test-enabled"):
            logger.debug(lambda: "resolved context")

        assert "resolved context" in caplog.text

    def test_lazy_string(self):
        assert str(lazy(lambda: 6 * 7)) == "42"


@pytest.mark.unit
class TestSetupLogging:
    """Test queue based logging setup."""

    def test_writes_json_lines_to_file(self, tmp_path):
        log_file = tmp_path / "logs" / "dispatch.jsonl"
        settings = LoggingSettings(file_enabled=True, file_path=log_file, console_enabled=False)
        root = logging.getLogger()
        previous_level = root.level

        try:
            setup_logging(settings, force=True)
            set_log_context(notification_id="7")
            logging.getLogger("test.setup").info("Queued delivery", extra={"adapter": "smtp"})
        finally:
            shutdown()
            root.setLevel(previous_level)

        [line] = log_file.read_text().splitlines()
        data = json.loads(line)
        assert data["message"] == "Queued delivery"
        assert data["notification_id"] == "7"
        assert data["adapter"] == "smtp"
