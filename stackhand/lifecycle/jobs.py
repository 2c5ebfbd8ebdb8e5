"""Lifecycle job: runs one install, update or removal on the remote host.

The job moves the record to its in-flight status before touching the
server and always finishes with a terminal write: ``active``, deletion,
``failed``, or (for a failed removal) the status held before the removal.
"""

from enum import Enum
from typing import Any

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from stackhand.broadcast import EventBroadcaster
from stackhand.config import Settings
from stackhand.contracts import LifecycleJobMessage, Operation
from stackhand.errors import GuardViolation, InvalidTransition, RemoteError
from stackhand.models import Server
from stackhand.remote import SessionFactory, credential_for
from stackhand.remote.session import truncate
from stackhand.store import RecordStore

from .kinds import JobContext, ResourceKind, get_kind
from .locks import single_flight
from .status import TaskStatus, rollback_removal, transition

logger = structlog.get_logger(__name__)


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"


IN_FLIGHT_STATUS = {
    Operation.INSTALL: TaskStatus.INSTALLING,
    Operation.REMOVE: TaskStatus.REMOVING,
    Operation.UPDATE: TaskStatus.UPDATING,
}


def describe_error(error: BaseException) -> str:
    if isinstance(error, RemoteError):
        return truncate(str(error))
    return truncate(f"{type(error).__name__}: {error}")


class LifecycleJob:
    """Executes lifecycle operations. One instance serves many messages."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        redis_client: redis.Redis,
        broadcaster: EventBroadcaster,
        settings: Settings,
        session_factory: SessionFactory,
    ):
        self.session_maker = session_maker
        self.redis = redis_client
        self.broadcaster = broadcaster
        self.settings = settings
        self.session_factory = session_factory

    async def handle(self, message: LifecycleJobMessage) -> JobOutcome:
        return await self.run(
            message.server_id, message.kind, message.resource_id, message.operation
        )

    async def run(
        self,
        server_id: int,
        kind_name: str,
        resource_id: int,
        operation: Operation,
    ) -> JobOutcome:
        kind = get_kind(kind_name)
        log = logger.bind(
            server_id=server_id,
            kind=kind.name,
            resource_id=resource_id,
            operation=operation.value,
        )

        lock_key = kind.lock_key(resource_id)
        async with single_flight(self.redis, lock_key, self.settings.lifecycle_lock_timeout) as ok:
            if not ok:
                log.info("lifecycle_job_already_running", lock_key=lock_key)
                return JobOutcome.SKIPPED

            async with self.session_maker() as session:
                store = RecordStore(session, self.broadcaster)
                return await self._execute(store, kind, server_id, resource_id, operation, log)

    async def _execute(
        self,
        store: RecordStore,
        kind: ResourceKind,
        server_id: int,
        resource_id: int,
        operation: Operation,
        log: Any,
    ) -> JobOutcome:
        session = store.session
        record = await session.get(kind.model, resource_id)
        server = await session.get(Server, server_id)
        if record is None or server is None or record.server_id != server_id:
            log.info("lifecycle_job_resource_missing", server_found=server is not None)
            return JobOutcome.NOT_FOUND

        in_flight = IN_FLIGHT_STATUS[operation]
        if record.status != in_flight.value:
            try:
                await store.update(record, **transition(record, in_flight, kind))
            except (InvalidTransition, GuardViolation) as e:
                log.warning("lifecycle_job_rejected", status=record.status, reason=str(e))
                return JobOutcome.SKIPPED

        log.info("lifecycle_job_started", host=server.public_ip)
        finalized = False
        try:
            ctx = JobContext(
                server=server,
                settings=self.settings,
                parent=await kind.load_parent(session, record),
            )
            commands = self._commands(kind, record, operation, ctx)
            remote = self.session_factory(
                server.public_ip,
                server.ssh_port,
                credential_for(kind.credential_type, self.settings),
            )
            await remote.run_all(commands, timeout=self.settings.remote_command_timeout)

            await self._succeed(store, kind, record, operation)
            finalized = True
            log.info("lifecycle_job_succeeded", commands=len(commands))
            return JobOutcome.SUCCEEDED
        except Exception as e:
            error = describe_error(e)
            log.error(
                "lifecycle_job_failed",
                error=error,
                error_type=type(e).__name__,
                exc_info=not isinstance(e, RemoteError),
            )
            await self._fail(store, kind, resource_id, operation, error)
            finalized = True
            return JobOutcome.FAILED
        finally:
            if not finalized:
                # Cancelled or interrupted before any terminal write
                log.warning("lifecycle_job_interrupted")
                await self._fail(
                    store, kind, resource_id, operation, "Job was interrupted before completion"
                )

    @staticmethod
    def _commands(
        kind: ResourceKind, record: Any, operation: Operation, ctx: JobContext
    ) -> list[str]:
        if operation is Operation.INSTALL:
            return kind.install_commands(record, ctx)
        if operation is Operation.REMOVE:
            return kind.remove_commands(record, ctx)
        return kind.update_commands(record, ctx)

    async def _succeed(
        self, store: RecordStore, kind: ResourceKind, record: Any, operation: Operation
    ) -> None:
        if operation is Operation.REMOVE:
            await kind.delete_dependents(store.session, record)
            await store.delete(record)
            return

        changes = transition(record, TaskStatus.ACTIVE)
        if operation is Operation.INSTALL:
            changes.update(kind.installed_fields(record))
        await store.update(record, **changes)

    async def _fail(
        self,
        store: RecordStore,
        kind: ResourceKind,
        resource_id: int,
        operation: Operation,
        error: str,
    ) -> None:
        session = store.session
        # Drop whatever the failed step left pending and reload the committed row
        await session.rollback()
        record = await session.get(kind.model, resource_id, populate_existing=True)
        if record is None or record.status != IN_FLIGHT_STATUS[operation].value:
            # Terminal write already happened
            return

        if operation is Operation.REMOVE:
            changes = rollback_removal(record, error)
        else:
            changes = transition(record, TaskStatus.FAILED, error=error)
        await store.update(record, **changes)
