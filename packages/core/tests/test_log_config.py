"""Tests for structlog configuration."""

import json

import pytest
import structlog

from budgetflow_core.config import BudgetFlowConfig, LogFormat
from budgetflow_core.log_config import configure_from, configure_logging


class TestConfigureLogging:
    """Test suite for configure_logging."""

    def test_json_output(self, capsys):
        """JSON rendering emits one object per event with level and timestamp."""
        configure_logging("INFO", LogFormat.JSON)

        structlog.get_logger().info("interval_opened", interval_id="p1")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "interval_opened"
        assert event["interval_id"] == "p1"
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filtering(self, capsys):
        configure_logging("WARNING", "json")

        logger = structlog.get_logger()
        logger.info("hidden")
        logger.warning("shown")

        output = capsys.readouterr().out
        assert "hidden" not in output
        assert "shown" in output

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            configure_logging("LOUD")

    def test_configure_from_settings(self, capsys):
        configure_from(BudgetFlowConfig(log_level="ERROR", log_format="json"))

        logger = structlog.get_logger()
        logger.warning("hidden")
        logger.error("allocation_batch_failed")

        output = capsys.readouterr().out
        assert "hidden" not in output
        assert "allocation_batch_failed" in output
