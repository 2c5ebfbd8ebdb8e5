"""Synchronous side of the lifecycle: validate, write the record, enqueue the job.

Nothing here touches a remote host. Every check runs before the first
write, so a rejected request leaves no trace and queues nothing.
"""

from typing import Any

from sqlalchemy import select, update
import structlog

from stackhand.contracts import LifecycleJobMessage, Operation
from stackhand.errors import GuardViolation, ResourceNotFound, ValidationFailed
from stackhand.models import (
    DatabaseEngine,
    ServerDatabase,
    ServerDatabaseSchema,
    ServerDatabaseUser,
    ServerFirewall,
    ServerFirewallRule,
    ServerRuntime,
    ServerScheduledTask,
)
from stackhand.redis import LIFECYCLE_QUEUE, RedisStreamClient
from stackhand.store import RecordStore
from stackhand.validation import databases, firewall, scheduler

from .kinds import kind_for
from .status import TaskStatus, check_edge, transition

logger = structlog.get_logger(__name__)


class LifecycleService:
    def __init__(self, store: RecordStore, queue: RedisStreamClient):
        self.store = store
        self.queue = queue

    @property
    def session(self):
        return self.store.session

    async def enqueue(self, record: Any, operation: Operation) -> LifecycleJobMessage:
        kind = kind_for(record)
        message = LifecycleJobMessage(
            server_id=record.server_id,
            kind=kind.name,
            resource_id=record.id,
            operation=operation,
        )
        await self.queue.publish_message(LIFECYCLE_QUEUE, message)
        logger.info(
            "lifecycle_job_enqueued",
            server_id=record.server_id,
            kind=kind.name,
            resource_id=record.id,
            operation=operation.value,
            request_id=message.request_id,
        )
        return message

    async def get_record(self, model: type, server_id: int, resource_id: int) -> Any:
        record = await self.session.get(model, resource_id)
        if record is None or record.server_id != server_id:
            raise ResourceNotFound(model.resource_kind, resource_id)
        return record

    async def get_child_record(
        self, model: type, server_id: int, database_id: int, resource_id: int
    ) -> Any:
        record = await self.get_record(model, server_id, resource_id)
        if record.database_id != database_id:
            raise ResourceNotFound(model.resource_kind, resource_id)
        return record

    # === Generic operations ===

    async def request_install(self, record: Any) -> Any:
        """Persist a new ``pending`` record and queue its install job."""
        record.status = TaskStatus.PENDING.value
        record = await self.store.add(record)
        await self.enqueue(record, Operation.INSTALL)
        return record

    async def request_removal(self, record: Any) -> Any:
        kind = kind_for(record)
        changes = transition(record, TaskStatus.REMOVING, kind)
        await kind.check_removal(self.session, record)
        await self.store.update(record, **changes)
        await self.enqueue(record, Operation.REMOVE)
        return record

    async def request_update(self, record: Any, **fields: Any) -> Any:
        """Write the desired ``fields`` together with ``updating`` and queue the update."""
        kind = kind_for(record)
        reason = kind.can_update(record)
        if reason:
            raise GuardViolation(reason)
        check_edge(record.status, TaskStatus.UPDATING.value)
        await self.store.update(record, status=TaskStatus.UPDATING.value, **fields)
        await self.enqueue(record, Operation.UPDATE)
        return record

    async def retry(self, record: Any) -> Any:
        """Move a failed record back to ``pending`` and queue exactly one install job."""
        kind = kind_for(record)
        changes = transition(record, TaskStatus.PENDING, kind)
        if isinstance(record, ServerDatabase):
            # A failed database gave up its slot; take it back only if it is still free
            await databases.lock_server(self.session, record.server_id)
            await databases.ensure_can_install(
                self.session, record.server_id, record.engine, exclude_id=record.id
            )
            await databases.ensure_port_free(
                self.session, record.server_id, record.port, exclude_id=record.id
            )
        await self.store.update(record, **changes)
        await self.enqueue(record, Operation.INSTALL)
        return record

    # === Kind-specific requests ===

    async def install_database(
        self,
        server_id: int,
        engine: str,
        version: str | None = None,
        port: int | None = None,
        name: str | None = None,
        root_password: str | None = None,
    ) -> ServerDatabase:
        """Category check and record creation share one transaction on a locked server row."""
        await databases.lock_server(self.session, server_id)
        await databases.ensure_can_install(self.session, server_id, engine)
        if port is None:
            port = await databases.next_available_port(self.session, server_id, engine)
        else:
            await databases.ensure_port_free(self.session, server_id, port)

        record = ServerDatabase(
            server_id=server_id,
            engine=engine,
            name=name or engine,
            version=version or databases.default_version(engine),
            port=port,
            root_password=root_password,
        )
        return await self.request_install(record)

    async def update_database(self, record: ServerDatabase, version: str) -> ServerDatabase:
        return await self.request_update(record, version=version)

    async def install_runtime(
        self, server_id: int, version: str, language: str = "php"
    ) -> ServerRuntime:
        await databases.lock_server(self.session, server_id)
        result = await self.session.execute(
            select(ServerRuntime)
            .where(ServerRuntime.server_id == server_id)
            .where(ServerRuntime.language == language)
        )
        existing = result.scalars().all()
        if any(runtime.version == version for runtime in existing):
            raise GuardViolation(f"{language} {version} is already installed on this server")

        # The first runtime of a language becomes both defaults
        first = not existing
        record = ServerRuntime(
            server_id=server_id,
            language=language,
            version=version,
            is_cli_default=first,
            is_site_default=first,
        )
        return await self.request_install(record)

    async def set_cli_default(self, record: ServerRuntime) -> ServerRuntime:
        """Flag ``record`` as CLI default and queue the remote switch."""
        if record.status != TaskStatus.ACTIVE.value:
            raise GuardViolation("Only an active runtime can become the CLI default")
        await self._clear_flag(record, ServerRuntime.is_cli_default)
        return await self.request_update(record, is_cli_default=True)

    async def set_site_default(self, record: ServerRuntime) -> ServerRuntime:
        if record.status != TaskStatus.ACTIVE.value:
            raise GuardViolation("Only an active runtime can become the site default")
        await self._clear_flag(record, ServerRuntime.is_site_default)
        await self.store.update(record, is_site_default=True)
        return record

    async def _clear_flag(self, record: ServerRuntime, column: Any) -> None:
        await self.session.execute(
            update(ServerRuntime)
            .where(ServerRuntime.server_id == record.server_id)
            .where(ServerRuntime.language == record.language)
            .where(ServerRuntime.id != record.id)
            .values({column.key: False})
        )

    async def add_firewall_rule(
        self,
        server_id: int,
        name: str,
        port: str | None,
        from_ip_address: str | None,
        rule_type: str,
    ) -> ServerFirewallRule:
        server_firewall = await self._firewall_for(server_id)
        await firewall.ensure_rule_port_unique(self.session, server_firewall.id, port)
        record = ServerFirewallRule(
            server_id=server_id,
            firewall_id=server_firewall.id,
            name=name,
            port=port,
            from_ip_address=from_ip_address,
            rule_type=rule_type,
        )
        return await self.request_install(record)

    async def _firewall_for(self, server_id: int) -> ServerFirewall:
        result = await self.session.execute(
            select(ServerFirewall).where(ServerFirewall.server_id == server_id)
        )
        server_firewall = result.scalar_one_or_none()
        if server_firewall is None:
            server_firewall = ServerFirewall(server_id=server_id, is_enabled=True)
            self.session.add(server_firewall)
            await self.session.flush()
        return server_firewall

    async def add_scheduled_task(
        self, server_id: int, max_tasks: int, **fields: Any
    ) -> ServerScheduledTask:
        await scheduler.ensure_task_limit(self.session, server_id, max_tasks)
        return await self.request_install(ServerScheduledTask(server_id=server_id, **fields))

    async def add_database_schema(
        self, database: ServerDatabase, name: str, **fields: Any
    ) -> ServerDatabaseSchema:
        self._ensure_accepts_children(database)
        result = await self.session.execute(
            select(ServerDatabaseSchema.id)
            .where(ServerDatabaseSchema.database_id == database.id)
            .where(ServerDatabaseSchema.name == name)
        )
        if result.first() is not None:
            raise ValidationFailed.single("name", f"A schema named {name} already exists.")
        record = ServerDatabaseSchema(
            server_id=database.server_id, database_id=database.id, name=name, **fields
        )
        return await self.request_install(record)

    async def add_database_user(
        self, database: ServerDatabase, username: str, password: str, **fields: Any
    ) -> ServerDatabaseUser:
        self._ensure_accepts_children(database)
        result = await self.session.execute(
            select(ServerDatabaseUser.id)
            .where(ServerDatabaseUser.database_id == database.id)
            .where(ServerDatabaseUser.username == username)
        )
        if result.first() is not None:
            raise ValidationFailed.single("username", f"A user named {username} already exists.")
        record = ServerDatabaseUser(
            server_id=database.server_id,
            database_id=database.id,
            username=username,
            password=password,
            **fields,
        )
        return await self.request_install(record)

    @staticmethod
    def _ensure_accepts_children(database: ServerDatabase) -> None:
        if database.engine == DatabaseEngine.REDIS.value:
            raise GuardViolation("Redis does not support schemas or users")
        if database.status != TaskStatus.ACTIVE.value:
            raise GuardViolation("The database must be active before adding schemas or users")
