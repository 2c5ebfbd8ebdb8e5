"""Tests for logging setup and secret masking."""

import json
import logging

import pytest
import structlog

from stackhand.logging import (
    clear_context,
    get_correlation_id,
    new_correlation_id,
    set_correlation_id,
    setup_logging,
)
from stackhand.logging.config import MASK, redact_secrets


def parse_json_lines(output):
    return [json.loads(line) for line in output.strip().split("\n") if line.strip()]


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration around each test."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestRedactSecrets:
    def test_masks_known_keys(self):
        event = redact_secrets(
            None,
            "info",
            {"event": "database_user_created", "password": "hunter22", "username": "app"},
        )

        assert event["password"] == MASK
        assert event["username"] == "app"

    def test_leaves_empty_values(self):
        event = redact_secrets(None, "info", {"event": "x", "root_password": None})

        assert event["root_password"] is None


class TestSetupLogging:
    def test_json_output(self, capsys):
        setup_logging(service_name="stackhand-test", log_format="json", log_level="INFO")

        structlog.get_logger("stackhand.test").info("server_registered", server_id=3)

        entries = parse_json_lines(capsys.readouterr().out)
        event = entries[-1]
        assert event["event"] == "server_registered"
        assert event["server_id"] == 3
        assert event["service"] == "stackhand-test"
        assert event["level"] == "info"

    def test_secret_never_rendered(self, capsys):
        setup_logging(log_format="json", log_level="INFO")

        structlog.get_logger().info("metrics_rejected", monitoring_token="abc123")

        output = capsys.readouterr().out
        assert "abc123" not in output

    def test_level_filters_debug(self, capsys):
        setup_logging(log_format="json", log_level="WARNING")

        structlog.get_logger().info("not_shown")

        assert "not_shown" not in capsys.readouterr().out

    def test_unknown_level_falls_back_to_info(self, capsys):
        setup_logging(log_format="json", log_level="chatty")

        structlog.get_logger().info("shown")

        assert "shown" in capsys.readouterr().out


class TestCorrelation:
    def test_bind_and_clear(self):
        correlation_id = new_correlation_id("job")
        set_correlation_id(correlation_id)

        assert correlation_id.startswith("job_")
        assert get_correlation_id() == correlation_id

        clear_context()
        assert get_correlation_id() is None
