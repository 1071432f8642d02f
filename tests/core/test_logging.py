"""
Tests for the logging module.

Tests verify:
- JSON lines carry ECS-style timestamp/level plus service and logger names
- Bound context appears in every event and is removed afterwards
- DEBUG logs are suppressed at INFO level
"""

import json
import logging

import pytest
import structlog

from backuper.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def _reset_logging():
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)


def read_events(capsys) -> list[dict]:
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]


class TestJsonLogging:
    def test_event_fields(self, capsys):
        configure_logging(level="INFO", json_format=True, service="backuper-test")
        get_logger("backuper.test").info("backup_saved", target="daily")

        (event,) = read_events(capsys)
        assert event["event"] == "backup_saved"
        assert event["target"] == "daily"
        assert event["log.level"] == "info"
        assert event["logger"] == "backuper.test"
        assert event["service.name"] == "backuper-test"
        assert "@timestamp" in event

    def test_debug_suppressed_at_info(self, capsys):
        configure_logging(level="INFO", json_format=True)
        logger = get_logger("backuper.test")
        logger.debug("hidden")
        logger.warning("shown")

        assert [e["event"] for e in read_events(capsys)] == ["shown"]


class TestContext:
    def test_log_context_scopes_fields(self, capsys):
        configure_logging(level="DEBUG", json_format=True)
        logger = get_logger("backuper.test")

        with LogContext(target="hourly"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = read_events(capsys)
        assert inside["target"] == "hourly"
        assert "target" not in outside

    @pytest.mark.asyncio
    async def test_async_log_context(self, capsys):
        configure_logging(level="DEBUG", json_format=True)
        logger = get_logger("backuper.test")

        async with LogContext(target="daily"):
            logger.info("inside")

        (event,) = read_events(capsys)
        assert event["target"] == "daily"

    def test_bind_and_clear(self, capsys):
        configure_logging(level="DEBUG", json_format=True)
        logger = get_logger("backuper.test")

        bind_context(identifier="backup-1")
        logger.info("bound")
        clear_context()
        logger.info("cleared")

        bound, cleared = read_events(capsys)
        assert bound["identifier"] == "backup-1"
        assert "identifier" not in cleared
