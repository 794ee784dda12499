"""Tests for logging utilities."""

import logging

import pytest

from eagledeploy.logging import (
    TRACE,
    StructuredLogger,
    configure_logging,
    get_level_from_verbosity,
    get_logger,
)


class TestLevels:
    """Tests for level helpers."""

    @pytest.mark.parametrize(
        "verbosity,expected",
        [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (3, TRACE), (7, TRACE)],
    )
    def test_verbosity(self, verbosity, expected):
        """Test -v counts map to levels."""
        assert get_level_from_verbosity(verbosity) == expected


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_custom_level(self):
        """Test the root level follows the console level."""
        configure_logging(level=logging.DEBUG)
        assert logging.root.level == logging.DEBUG

    def test_log_file(self, tmp_path):
        """Test a log file receives records at its own level."""
        log_file = tmp_path / "logs" / "eagledeploy.log"
        configure_logging(level=logging.WARNING, log_file=log_file, file_level=logging.DEBUG)

        logging.getLogger("eagledeploy.test").debug("written to file only")
        for handler in logging.root.handlers:
            handler.flush()

        assert "written to file only" in log_file.read_text()
        configure_logging()


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_context_formatting(self, caplog):
        """Test default and per-call context are appended."""
        logger = StructuredLogger("test.structured", run="nightly")
        with caplog.at_level(logging.INFO, logger="test.structured"):
            logger.info("Task started", task="uptime")
        assert "Task started (run=nightly, task=uptime)" in caplog.text

    def test_event(self, caplog):
        """Test events carry their category."""
        logger = get_logger("test.event")
        with caplog.at_level(logging.INFO, logger="test.event"):
            logger.event(logging.INFO, "Inventory", "Host added", address="10.0.0.5")
        assert "[Inventory] Host added (address=10.0.0.5)" in caplog.text

    def test_trace_level(self, caplog):
        """Test trace messages use the TRACE level."""
        logger = get_logger("test.trace")
        with caplog.at_level(TRACE, logger="test.trace"):
            logger.trace("Remote command", command="uptime")
        assert caplog.records[-1].levelname == "TRACE"

    def test_performance(self, caplog):
        """Test performance logs a duration with context."""
        logger = get_logger("test.perf")
        with caplog.at_level(logging.INFO, logger="test.perf"):
            with logger.performance("Execution run", units=4):
                pass
        assert "Execution run completed in" in caplog.text
        assert "(units=4)" in caplog.text

