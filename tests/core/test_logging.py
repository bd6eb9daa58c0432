"""
Tests for the structured logging module.

Tests verify:
- JSON lines carry ECS-compatible fields
- Levels below the configured one are dropped
- LogContext binds and restores context
"""

import io
import json

import structlog

from fibretry.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


def _lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


class TestConfigureLogging:
    def test_json_fields(self):
        stream = io.StringIO()
        configure_logging(level="INFO", json_format=True, service="payments", stream=stream)

        get_logger("tests.json").info("retry.succeeded", attempt=2)

        [record] = _lines(stream)
        assert record["event"] == "retry.succeeded"
        assert record["attempt"] == 2
        assert record["log.level"] == "info"
        assert record["service.name"] == "payments"
        assert record["logger_name"] == "tests.json"
        assert "@timestamp" in record

    def test_level_filtering(self):
        stream = io.StringIO()
        configure_logging(level="WARNING", json_format=True, stream=stream)

        logger = get_logger("tests.level")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["event"] for r in _lines(stream)] == ["kept"]

    def test_console_format(self):
        stream = io.StringIO()
        configure_logging(level="INFO", json_format=False, stream=stream)

        get_logger("tests.console").info("scheduler.started", thread="t1")

        output = stream.getvalue()
        assert "scheduler.started" in output
        assert "t1" in output


class TestContext:
    def teardown_method(self):
        clear_context()

    def test_bind_and_unbind(self):
        stream = io.StringIO()
        configure_logging(json_format=True, stream=stream)
        logger = get_logger("tests.ctx")

        bind_context(executor="payments")
        logger.info("one")
        unbind_context("executor")
        logger.info("two")

        first, second = _lines(stream)
        assert first["executor"] == "payments"
        assert "executor" not in second

    def test_log_context_restores_outer_value(self):
        with LogContext(executor="outer"):
            with LogContext(executor="inner"):
                assert structlog.contextvars.get_contextvars()["executor"] == "inner"
            assert structlog.contextvars.get_contextvars()["executor"] == "outer"
        assert "executor" not in structlog.contextvars.get_contextvars()


class TestGetLogger:
    def test_named_logger_before_configuration(self, capsys):
        """Module-level loggers are created at import, before any configure call."""
        logger = get_logger("tests.early")
        logger.info("scheduler.started")
        assert "scheduler.started" in capsys.readouterr().out

    def test_named_logger_created_before_configure_uses_new_config(self):
        logger = get_logger("tests.late")
        stream = io.StringIO()
        configure_logging(level="INFO", json_format=True, stream=stream)

        logger.info("retry.scheduled", delay_ms=100)

        [record] = _lines(stream)
        assert record["logger_name"] == "tests.late"
        assert record["delay_ms"] == 100

    def test_unnamed_logger(self):
        stream = io.StringIO()
        configure_logging(level="INFO", json_format=True, stream=stream)

        get_logger().info("plain")

        [record] = _lines(stream)
        assert "logger_name" not in record
