"""
Tests for echobench.logging_setup module.
"""

import logging

import pytest

from echobench import logging_setup
from echobench.logging_setup import ColorFormatter, format_block, reset_logging, setup_logging


@pytest.fixture
def fresh_logging():
    """Run a test against an unconfigured logger and restore it afterwards."""
    reset_logging()
    yield
    reset_logging()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_only(self, fresh_logging):
        """Test console logging without a file handler."""
        logger = setup_logging(log_to_file=False, log_level="WARNING")

        assert logger.name == "echobench"
        assert not logger.propagate
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.WARNING

    def test_configured_once(self, fresh_logging):
        """Test repeated setup returns the same logger untouched."""
        first = setup_logging(log_to_file=False)
        second = setup_logging(log_to_file=False, log_level="DEBUG")

        assert first is second
        assert len(second.handlers) == 1

    def test_reset(self, fresh_logging):
        """Test reset drops every handler."""
        logger = setup_logging(log_to_file=False)
        reset_logging()

        assert logger.handlers == []
        assert logging_setup._logger is None


class TestColorFormatter:
    """Tests for ColorFormatter."""

    def test_colours_level(self):
        """Test the level name is coloured and the record restored."""
        formatter = ColorFormatter("%(levelname)s %(message)s")
        record = logging.LogRecord("echobench", logging.ERROR, __file__, 1, "boom", None, None)

        text = formatter.format(record)

        assert text == "\033[31mERROR\033[0m boom"
        assert record.levelname == "ERROR"


class TestFormatBlock:
    """Tests for log block formatting."""

    def test_format_block(self):
        """Test titled, indented blocks."""
        assert format_block("T", ["a", "b"]) == "[T]\n  a\n  b"
