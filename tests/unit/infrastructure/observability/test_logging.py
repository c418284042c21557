"""Tests for structured logging."""

import json
import logging
import sys

import pytest

from mediashelf.infrastructure.observability.logger_template import log_operation
from mediashelf.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self):
        """Test setting and getting correlation ID."""
        test_id = "scan-123-abc"
        result = set_correlation_id(test_id)
        assert result == test_id
        assert get_correlation_id() == test_id

    def test_set_correlation_id_generates_uuid_when_none(self):
        """Test that setting None generates a UUID."""
        result = set_correlation_id(None)
        assert len(result) == 36
        assert get_correlation_id() == result

    def test_filter_adds_correlation_id(self):
        """Test that the filter stamps records with the current ID."""
        set_correlation_id("scan-456")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "scan-456"


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self):
        """Test configuring logging with DEBUG level."""
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_info_level(self):
        """Test configuring logging with INFO level."""
        configure_logging(log_level="INFO", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() == logging.INFO

    def test_repeated_configuration_does_not_stack_handlers(self):
        """Test that calling configure_logging twice leaves one handler."""
        configure_logging(log_level="INFO", json_format=True)
        configure_logging(log_level="INFO", json_format=True)
        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CustomJsonFormatter)

    def test_noisy_libraries_quieted(self):
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


class TestFormatters:
    """Test JSON and compact formatters."""

    def test_json_formatter_fields(self):
        formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = logging.LogRecord(
            "mediashelf.test", logging.WARNING, __file__, 42, "hello %s", ("world",), None
        )
        record.correlation_id = "cid-1"

        payload = json.loads(formatter.format(record))

        assert payload["message"] == "hello world"
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "mediashelf.test"
        assert payload["correlation_id"] == "cid-1"

    def test_compact_formatter_shows_cause_chain(self):
        try:
            try:
                raise OSError("disk gone")
            except OSError as e:
                raise RuntimeError("scan failed") from e
        except RuntimeError:
            text = CompactExceptionFormatter().formatException(sys.exc_info())

        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == ["╰─► OSError: disk gone", "╰─► RuntimeError: scan failed"]


class TestLogOperation:
    """Test the log_operation context manager."""

    async def test_logs_started_and_completed(self, caplog: pytest.LogCaptureFixture):
        logger = logging.getLogger("mediashelf.test.op")
        with caplog.at_level(logging.INFO, logger="mediashelf.test.op"):
            async with log_operation(logger, "library.full_scan", root_count=2) as ctx:
                ctx["audio"] = 5

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["library.full_scan.started", "library.full_scan.completed"]
        completed = caplog.records[-1]
        assert completed.audio == 5
        assert completed.root_count == 2
        assert completed.duration_ms >= 0

    async def test_logs_failed_and_reraises(self, caplog: pytest.LogCaptureFixture):
        logger = logging.getLogger("mediashelf.test.op")
        with caplog.at_level(logging.INFO, logger="mediashelf.test.op"):
            with pytest.raises(ValueError):
                async with log_operation(logger, "library.full_scan"):
                    raise ValueError("boom")

        failed = caplog.records[-1]
        assert failed.getMessage() == "library.full_scan.failed"
        assert failed.levelno == logging.ERROR
        assert failed.error_type == "ValueError"
