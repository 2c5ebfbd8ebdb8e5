"""Unit tests for input validation helpers and request schemas."""

from pydantic import ValidationError
import pytest

from stackhand.api.schemas import (
    DatabaseCreate,
    FirewallRuleCreate,
    MetricsPayload,
    ScheduledTaskCreate,
)
from stackhand.validation.databases import category_for, default_version, engines_in
from stackhand.validation.firewall import port_error
from stackhand.validation.scheduler import cron_error


class TestPortError:
    @pytest.mark.parametrize("value", ["22", "1", "65535", "3000-3005", "8000-8100"])
    def test_valid(self, value):
        assert port_error(value) is None

    @pytest.mark.parametrize(
        ("value", "message"),
        [
            ("http", "valid port number"),
            ("80,443", "valid port number"),
            ("0", "between 1 and 65535"),
            ("70000", "between 1 and 65535"),
            ("3005-3000", "start must be less than end"),
            ("3000-3000", "start must be less than end"),
            ("0-10", "between 1 and 65535"),
        ],
    )
    def test_invalid(self, value, message):
        assert message in port_error(value)


class TestCronError:
    @pytest.mark.parametrize(
        "expression", ["* * * * *", "*/5 * * * *", "0 9-17 * * 1-5", "0,30 * 1 1,6 0"]
    )
    def test_valid(self, expression):
        assert cron_error(expression) is None

    @pytest.mark.parametrize("expression", ["* * * *", "every day", "* * * * * *"])
    def test_wrong_shape(self, expression):
        assert "five space-separated fields" in cron_error(expression)

    def test_out_of_range(self):
        assert "out of range 0-23" in cron_error("0 24 * * *")


class TestCategories:
    def test_sql_engines_share_a_category(self):
        assert category_for("mysql") == category_for("mariadb") == category_for("postgresql")
        assert category_for("redis") != category_for("mysql")

    def test_engines_in_category(self):
        assert sorted(engines_in("sql")) == ["mariadb", "mysql", "postgresql"]
        assert engines_in("cache") == ["redis"]

    def test_default_version(self):
        assert default_version("redis") == "7.2"


class TestSchemas:
    def test_sql_database_needs_password(self):
        with pytest.raises(ValidationError, match="root_password"):
            DatabaseCreate(engine="mysql")

    def test_redis_needs_no_password(self):
        assert DatabaseCreate(engine="redis").root_password is None

    def test_database_name_charset(self):
        with pytest.raises(ValidationError):
            DatabaseCreate(engine="mysql", name="app db", root_password="password123")

    def test_firewall_rule_port(self):
        with pytest.raises(ValidationError, match="Port range start"):
            FirewallRuleCreate(name="web", port="9000-8000")

    def test_firewall_rule_needs_port_or_source(self):
        with pytest.raises(ValidationError, match="needs a port"):
            FirewallRuleCreate(name="web")

    def test_firewall_rule_source_must_be_ip(self):
        with pytest.raises(ValidationError):
            FirewallRuleCreate(name="web", port="80", from_ip_address="not-an-ip")

    def test_custom_schedule_needs_expression(self):
        with pytest.raises(ValidationError, match="cron_expression is required"):
            ScheduledTaskCreate(name="backup", command="backup.sh", frequency="custom")

    def test_preset_schedule_drops_expression(self):
        task = ScheduledTaskCreate(
            name="backup", command="backup.sh", frequency="daily", cron_expression="* * * * *"
        )

        assert task.cron_expression is None

    def test_metrics_percentages_are_bounded(self):
        with pytest.raises(ValidationError):
            MetricsPayload(
                cpu_usage=120,
                memory_total_mb=2048,
                memory_used_mb=1024,
                memory_usage_percentage=50,
                storage_total_gb=40,
                storage_used_gb=10,
                storage_usage_percentage=25,
                collected_at="2026-01-01T00:00:00Z",
            )
