"""Per-kind adapters over the shared lifecycle.

An adapter knows which model a kind is stored in, which account its remote
commands run as, what blocks removal or retry, and which commands install,
update or remove it.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stackhand.config import Settings
from stackhand.errors import GuardViolation
from stackhand.models import (
    Server,
    ServerDatabase,
    ServerDatabaseSchema,
    ServerDatabaseUser,
    ServerFirewallRule,
    ServerReverseProxy,
    ServerRuntime,
    ServerScheduledTask,
    ServerSite,
    ServerSupervisorTask,
)
from stackhand.models.base import utcnow
from stackhand.remote import CredentialType
from stackhand.templates.cron import render_cron_entry, render_task_wrapper
from stackhand.templates.supervisor import program_name, render_supervisor_config

from . import scripts
from .status import TaskStatus, is_transitional


def _upper_first(text: str) -> str:
    return text[:1].upper() + text[1:]


@dataclass
class JobContext:
    """What command builders may need besides the record itself."""

    server: Server
    settings: Settings
    parent: Any | None = None


class ResourceKind:
    name: str
    label: str
    model: type
    credential_type: CredentialType = CredentialType.ROOT
    supports_update: bool = False

    def __init__(self, name: str, label: str, model: type):
        self.name = name
        self.label = label
        self.model = model

    def describe(self, record: Any) -> str:
        return self.label

    # --- guards ---

    def _busy(self, record: Any) -> str:
        return f"{_upper_first(self.describe(record))} is currently being modified. Please wait."

    def can_remove(self, record: Any) -> str | None:
        if is_transitional(record.status):
            return self._busy(record)
        return None

    def can_retry(self, record: Any) -> str | None:
        if record.status != TaskStatus.FAILED.value:
            return f"Only failed {self.label}s can be retried"
        return None

    def can_update(self, record: Any) -> str | None:
        if not self.supports_update:
            return f"{self.label.capitalize()}s cannot be updated"
        if is_transitional(record.status):
            return self._busy(record)
        if record.status != TaskStatus.ACTIVE.value:
            return f"Only active {self.label}s can be updated"
        return None

    async def check_removal(self, session: AsyncSession, record: Any) -> None:
        """Checks that need the database. Raises GuardViolation."""

    # --- execution ---

    async def load_parent(self, session: AsyncSession, record: Any) -> Any | None:
        return None

    async def delete_dependents(self, session: AsyncSession, record: Any) -> None:
        """Delete rows that only make sense while ``record`` exists."""

    def install_commands(self, record: Any, ctx: JobContext) -> list[str]:
        raise NotImplementedError

    def remove_commands(self, record: Any, ctx: JobContext) -> list[str]:
        raise NotImplementedError

    def update_commands(self, record: Any, ctx: JobContext) -> list[str]:
        raise GuardViolation(f"{self.label.capitalize()}s cannot be updated")

    def installed_fields(self, record: Any) -> dict[str, Any]:
        """Extra fields written together with ``active`` after an install."""
        return {}

    def lock_key(self, resource_id: int) -> str:
        return f"lifecycle:{self.name}:{resource_id}"


class DatabaseKind(ResourceKind):
    supports_update = True

    def describe(self, record: ServerDatabase) -> str:
        return "cache/queue service" if record.engine == "redis" else "database"

    async def check_removal(self, session: AsyncSession, record: ServerDatabase) -> None:
        result = await session.execute(
            select(func.count()).select_from(ServerSite).where(ServerSite.database_id == record.id)
        )
        if result.scalar_one():
            raise GuardViolation(
                "Cannot uninstall this database while sites depend on it. "
                "Remove or reassign those sites first."
            )

    def install_commands(self, record: ServerDatabase, ctx: JobContext) -> list[str]:
        return scripts.database_install(record)

    def remove_commands(self, record: ServerDatabase, ctx: JobContext) -> list[str]:
        return scripts.database_remove(record)

    def update_commands(self, record: ServerDatabase, ctx: JobContext) -> list[str]:
        return scripts.database_update(record)

    async def delete_dependents(self, session: AsyncSession, record: ServerDatabase) -> None:
        for model in (ServerDatabaseUser, ServerDatabaseSchema):
            await session.execute(delete(model).where(model.database_id == record.id))


class _DatabaseChildKind(ResourceKind):
    async def load_parent(self, session: AsyncSession, record: Any) -> ServerDatabase | None:
        return await session.get(ServerDatabase, record.database_id)


class DatabaseSchemaKind(_DatabaseChildKind):
    def install_commands(self, record: ServerDatabaseSchema, ctx: JobContext) -> list[str]:
        return scripts.schema_create(ctx.parent, record)

    def remove_commands(self, record: ServerDatabaseSchema, ctx: JobContext) -> list[str]:
        return scripts.schema_drop(ctx.parent, record)


class DatabaseUserKind(_DatabaseChildKind):
    supports_update = True

    def install_commands(self, record: ServerDatabaseUser, ctx: JobContext) -> list[str]:
        return scripts.user_create(ctx.parent, record)

    def remove_commands(self, record: ServerDatabaseUser, ctx: JobContext) -> list[str]:
        return scripts.user_drop(ctx.parent, record)

    def update_commands(self, record: ServerDatabaseUser, ctx: JobContext) -> list[str]:
        return scripts.user_update(ctx.parent, record)


class RuntimeKind(ResourceKind):
    supports_update = True

    def describe(self, record: ServerRuntime) -> str:
        language = "PHP" if record.language == "php" else record.language.capitalize()
        return f"{language} {record.version}"

    def can_remove(self, record: ServerRuntime) -> str | None:
        if record.is_cli_default:
            return f"Cannot remove {self.describe(record)} as it is the CLI default version"
        if record.is_site_default:
            return (
                f"Cannot remove {self.describe(record)} as it is the default version for new sites"
            )
        return super().can_remove(record)

    def install_commands(self, record: ServerRuntime, ctx: JobContext) -> list[str]:
        return scripts.runtime_install(record)

    def remove_commands(self, record: ServerRuntime, ctx: JobContext) -> list[str]:
        return scripts.runtime_remove(record)

    def update_commands(self, record: ServerRuntime, ctx: JobContext) -> list[str]:
        # Runtimes are only "updated" to repoint the CLI default
        if record.is_cli_default and record.language == "php":
            return scripts.runtime_set_cli_default(record)
        return []


class FirewallRuleKind(ResourceKind):
    def install_commands(self, record: ServerFirewallRule, ctx: JobContext) -> list[str]:
        return scripts.firewall_rule_install(record)

    def remove_commands(self, record: ServerFirewallRule, ctx: JobContext) -> list[str]:
        return scripts.firewall_rule_remove(record)


class SupervisorTaskKind(ResourceKind):
    supports_update = True

    def install_commands(self, record: ServerSupervisorTask, ctx: JobContext) -> list[str]:
        return scripts.supervisor_task_install(
            program_name(record.name), render_supervisor_config(record)
        )

    def remove_commands(self, record: ServerSupervisorTask, ctx: JobContext) -> list[str]:
        return scripts.supervisor_task_remove(program_name(record.name))

    def update_commands(self, record: ServerSupervisorTask, ctx: JobContext) -> list[str]:
        return scripts.supervisor_task_update(
            program_name(record.name), render_supervisor_config(record)
        )

    def installed_fields(self, record: ServerSupervisorTask) -> dict[str, Any]:
        return {"installed_at": utcnow(), "uninstalled_at": None}


class ScheduledTaskKind(ResourceKind):
    supports_update = True

    def install_commands(self, record: ServerScheduledTask, ctx: JobContext) -> list[str]:
        return scripts.scheduled_task_install(
            record, render_task_wrapper(record), render_cron_entry(record)
        )

    def remove_commands(self, record: ServerScheduledTask, ctx: JobContext) -> list[str]:
        return scripts.scheduled_task_remove(record)

    def update_commands(self, record: ServerScheduledTask, ctx: JobContext) -> list[str]:
        return self.install_commands(record, ctx)


class ReverseProxyKind(ResourceKind):
    def install_commands(self, record: ServerReverseProxy, ctx: JobContext) -> list[str]:
        return scripts.reverse_proxy_install(record)

    def remove_commands(self, record: ServerReverseProxy, ctx: JobContext) -> list[str]:
        return scripts.reverse_proxy_remove(record)


KINDS: dict[str, ResourceKind] = {
    kind.name: kind
    for kind in (
        DatabaseKind("database", "database", ServerDatabase),
        DatabaseSchemaKind("database-schema", "database schema", ServerDatabaseSchema),
        DatabaseUserKind("database-user", "database user", ServerDatabaseUser),
        RuntimeKind("runtime", "runtime", ServerRuntime),
        FirewallRuleKind("firewall-rule", "firewall rule", ServerFirewallRule),
        SupervisorTaskKind("supervisor-task", "supervisor task", ServerSupervisorTask),
        ScheduledTaskKind("scheduled-task", "scheduled task", ServerScheduledTask),
        ReverseProxyKind("reverse-proxy", "reverse proxy", ServerReverseProxy),
    )
}


def get_kind(name: str) -> ResourceKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"Unknown resource kind: {name}") from None


def kind_for(record: Any) -> ResourceKind:
    return get_kind(record.resource_kind)
