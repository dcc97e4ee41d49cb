"""Tests for logging configuration."""

import json
import logging

import pytest

from protofhir.logging_config import StructuredFormatter, configure_logging


@pytest.fixture
def protofhir_logger():
    logger = logging.getLogger("protofhir")
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(level)


class TestStructuredFormatter:
    """Tests for JSON log lines."""

    def test_fields(self):
        """JSON line carries level, logger, message and timestamp."""
        record = logging.LogRecord(
            name="protofhir.pipeline.controller",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="Stage %d operation failed: %s",
            args=(3, "server down"),
            exc_info=None,
        )

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "protofhir.pipeline.controller"
        assert payload["message"] == "Stage 3 operation failed: server down"
        assert "timestamp" in payload
        assert "exception" not in payload


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_single_handler_on_repeat(self, protofhir_logger):
        """Repeated setup keeps one handler and updates the level."""
        configure_logging("debug")
        configure_logging("warning")

        assert len(protofhir_logger.handlers) == 1
        assert protofhir_logger.level == logging.WARNING

    def test_structured_switch(self, protofhir_logger):
        """Formatter follows the structured flag."""
        configure_logging("info", structured=True)
        assert isinstance(protofhir_logger.handlers[0].formatter, StructuredFormatter)

        configure_logging("info", structured=False)
        assert not isinstance(protofhir_logger.handlers[0].formatter, StructuredFormatter)
