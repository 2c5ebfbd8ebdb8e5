"""Unit tests for per-kind guards and command selection."""

import pytest

from stackhand.config import Settings
from stackhand.errors import GuardViolation
from stackhand.lifecycle.kinds import KINDS, JobContext, get_kind, kind_for
from stackhand.models import (
    Server,
    ServerDatabase,
    ServerFirewallRule,
    ServerRuntime,
    ServerScheduledTask,
    ServerSupervisorTask,
)
from stackhand.remote import CredentialType


@pytest.fixture
def ctx(settings: Settings) -> JobContext:
    server = Server(id=1, vanity_name="web-1", public_ip="203.0.113.10", ssh_port=22)
    return JobContext(server=server, settings=settings)


def runtime(**fields) -> ServerRuntime:
    defaults = {
        "id": 5,
        "server_id": 1,
        "language": "php",
        "version": "8.2",
        "status": "active",
        "is_cli_default": False,
        "is_site_default": False,
    }
    return ServerRuntime(**{**defaults, **fields})


class TestRegistry:
    def test_every_model_kind_is_registered(self):
        assert set(KINDS) == {
            "database",
            "database-schema",
            "database-user",
            "runtime",
            "firewall-rule",
            "supervisor-task",
            "scheduled-task",
            "reverse-proxy",
        }

    def test_kind_for_record(self):
        assert kind_for(runtime()).name == "runtime"

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown resource kind"):
            get_kind("mailbox")

    def test_commands_run_as_root(self):
        assert all(kind.credential_type is CredentialType.ROOT for kind in KINDS.values())

    def test_lock_key_is_per_resource(self):
        assert get_kind("runtime").lock_key(5) == "lifecycle:runtime:5"
        assert get_kind("database").lock_key(5) != get_kind("runtime").lock_key(5)


class TestRuntimeGuards:
    def test_cli_default_cannot_be_removed(self):
        reason = get_kind("runtime").can_remove(runtime(is_cli_default=True, version="8.3"))

        assert reason == "Cannot remove PHP 8.3 as it is the CLI default version"

    def test_site_default_cannot_be_removed(self):
        reason = get_kind("runtime").can_remove(runtime(is_site_default=True))

        assert "default version for new sites" in reason

    def test_plain_runtime_can_be_removed(self):
        assert get_kind("runtime").can_remove(runtime()) is None

    def test_transitional_runtime_cannot_be_removed(self):
        reason = get_kind("runtime").can_remove(runtime(status="installing"))

        assert reason == "PHP 8.2 is currently being modified. Please wait."

    def test_only_failed_can_be_retried(self):
        assert get_kind("runtime").can_retry(runtime(status="active")) == (
            "Only failed runtimes can be retried"
        )
        assert get_kind("runtime").can_retry(runtime(status="failed")) is None


class TestUpdateGuards:
    def test_firewall_rules_cannot_be_updated(self):
        rule = ServerFirewallRule(status="active", name="web", port="80", rule_type="allow")

        assert get_kind("firewall-rule").can_update(rule) == "Firewall rules cannot be updated"

    def test_only_active_records_update(self):
        db = ServerDatabase(status="failed", engine="mysql", version="8.0", port=3306)

        assert get_kind("database").can_update(db) == "Only active databases can be updated"

    def test_redis_is_described_as_cache_service(self):
        db = ServerDatabase(status="removing", engine="redis", version="7.2", port=6379)

        assert get_kind("database").can_remove(db) == (
            "Cache/queue service is currently being modified. Please wait."
        )


class TestCommands:
    def test_runtime_update_switches_cli_default(self, ctx):
        commands = get_kind("runtime").update_commands(runtime(is_cli_default=True), ctx)

        assert commands == ["update-alternatives --set php /usr/bin/php8.2"]

    def test_firewall_rule_install(self, ctx):
        rule = ServerFirewallRule(
            id=3, name="web", port="8000-8100", rule_type="allow", from_ip_address=None
        )

        commands = get_kind("firewall-rule").install_commands(rule, ctx)

        assert "ufw allow 8000:8100/tcp comment web" in commands
        assert commands[-1] == "ufw reload"

    def test_firewall_rule_from_source(self, ctx):
        rule = ServerFirewallRule(
            id=3, name="db", port="5432", rule_type="deny", from_ip_address="198.51.100.7"
        )

        commands = get_kind("firewall-rule").remove_commands(rule, ctx)

        assert commands[0] == "ufw delete deny from 198.51.100.7 to any port 5432 proto tcp"

    def test_supervisor_install_writes_config(self, ctx):
        task = ServerSupervisorTask(
            id=2,
            name="queue worker",
            command="php artisan queue:work",
            working_directory="/home/stackhand/app",
            processes=2,
            user="stackhand",
            auto_restart=True,
            autorestart_unexpected=False,
        )

        commands = get_kind("supervisor-task").install_commands(task, ctx)

        assert any("/etc/supervisor/conf.d/queue_worker.conf" in c for c in commands)
        assert "supervisorctl update" in commands

    def test_supervisor_install_stamps_installed_at(self):
        fields = get_kind("supervisor-task").installed_fields(ServerSupervisorTask())

        assert fields["installed_at"] is not None
        assert fields["uninstalled_at"] is None

    def test_scheduled_task_writes_wrapper_and_cron_file(self, ctx):
        task = ServerScheduledTask(
            id=9, name="backup", command="backup.sh", frequency="hourly", timeout=60
        )

        commands = get_kind("scheduled-task").install_commands(task, ctx)

        assert any("/opt/stackhand/scheduler/tasks/9.sh" in c for c in commands)
        assert any("/etc/cron.d/stackhand-task-9" in c for c in commands)

    def test_mysql_install_preseeds_root_password(self, ctx):
        db = ServerDatabase(
            id=1, engine="mysql", version="8.0", port=3306, root_password="s3cret-pass"
        )

        commands = get_kind("database").install_commands(db, ctx)

        assert any("debconf-set-selections" in c for c in commands)
        assert any("mysql-server mysql-client" in c for c in commands)

    def test_reverse_proxy_cannot_be_updated(self, ctx):
        with pytest.raises(GuardViolation):
            get_kind("reverse-proxy").update_commands(None, ctx)
