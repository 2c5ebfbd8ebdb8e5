"""Base stack provisioning (steps 4-8).

Runs after the bootstrap script reports its SSH keys installed. Each step
is marked ``installing`` before it starts and ``completed`` or ``failed``
when it ends. The first failure stops the run; ``ProvisionStepTracker.retry``
resumes from the failed step.
"""

from typing import Any

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from stackhand.broadcast import EventBroadcaster
from stackhand.config import Settings
from stackhand.contracts import ProvisionStackMessage
from stackhand.errors import RemoteError, ResourceNotFound
from stackhand.lifecycle import scripts
from stackhand.lifecycle.locks import single_flight
from stackhand.lifecycle.status import TaskStatus, transition
from stackhand.models import (
    ConnectionStatus,
    Server,
    ServerEvent,
    ServerFirewall,
    ServerFirewallRule,
    ServerReverseProxy,
    ServerRuntime,
)
from stackhand.redis import RedisStreamClient
from stackhand.remote import CredentialType, RemoteSession, SessionFactory, credential_for
from stackhand.remote.session import truncate
from stackhand.store import RecordStore

from .tracker import (
    COMPLETED,
    FAILED,
    FINAL_STEP,
    INSTALLING,
    STEP_NAMES,
    VERIFY_STEP,
    ProvisionStepTracker,
)

logger = structlog.get_logger(__name__)


class AccessVerificationFailed(RemoteError):
    """``whoami`` did not answer with the expected account."""


class StackProvisioner:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        redis_client: redis.Redis,
        queue: RedisStreamClient,
        broadcaster: EventBroadcaster,
        settings: Settings,
        session_factory: SessionFactory,
    ):
        self.session_maker = session_maker
        self.redis = redis_client
        self.queue = queue
        self.broadcaster = broadcaster
        self.settings = settings
        self.session_factory = session_factory

    async def handle(self, message: ProvisionStackMessage) -> bool:
        return await self.run(message.server_id, message.resume_from_step)

    async def run(self, server_id: int, from_step: int = VERIFY_STEP) -> bool:
        """Run steps ``from_step``..8. Returns True when the server is fully provisioned."""
        log = logger.bind(server_id=server_id, from_step=from_step)
        lock_key = f"provision:{server_id}"
        async with single_flight(self.redis, lock_key, self.settings.lifecycle_lock_timeout) as ok:
            if not ok:
                log.info("provision_stack_already_running")
                return False

            async with self.session_maker() as session:
                store = RecordStore(session, self.broadcaster)
                tracker = ProvisionStepTracker(store, self.queue)
                try:
                    server = await tracker.get_server(server_id)
                except ResourceNotFound:
                    log.info("provision_stack_server_missing")
                    return False

                for step in range(from_step, FINAL_STEP + 1):
                    if not await self._run_step(store, tracker, server, step):
                        return False

        log.info("provision_stack_completed")
        return True

    def _session(self, server: Server, credential_type: CredentialType) -> RemoteSession:
        return self.session_factory(
            server.public_ip,
            server.ssh_port,
            credential_for(credential_type, self.settings),
        )

    async def _run_step(
        self, store: RecordStore, tracker: ProvisionStepTracker, server: Server, step: int
    ) -> bool:
        server_id = server.id
        log = logger.bind(server_id=server_id, step=step)
        await tracker.mark_step(server_id, step, INSTALLING)
        log.info("provision_stack_step_started", name=STEP_NAMES[step])
        try:
            await self._step_handlers()[step](store, server)
        except Exception as e:
            error = truncate(str(e) if isinstance(e, RemoteError) else f"{type(e).__name__}: {e}")
            log.error("provision_stack_step_failed", error=error, error_type=type(e).__name__)
            await store.session.rollback()
            await self._record_event(store, server_id, step, FAILED, error)
            await tracker.mark_step(server_id, step, FAILED)
            return False

        await self._record_event(store, server_id, step, COMPLETED, STEP_NAMES[step])
        await tracker.mark_step(server_id, step, COMPLETED)
        return True

    def _step_handlers(self) -> dict[int, Any]:
        return {
            4: self.verify_access,
            5: self.configure_firewall,
            6: self.install_runtime,
            7: self.install_reverse_proxy,
            8: self.install_process_managers,
        }

    async def _record_event(
        self, store: RecordStore, server_id: int, step: int, status: str, message: str
    ) -> None:
        store.session.add(
            ServerEvent(server_id=server_id, provision_step=step, status=status, message=message)
        )
        await store.session.commit()

    async def _run(self, server: Server, commands: list[str]) -> None:
        remote = self._session(server, CredentialType.ROOT)
        await remote.run_all(commands, timeout=self.settings.remote_command_timeout)

    async def _install_record(
        self, store: RecordStore, server: Server, record: Any, commands: list[str]
    ) -> None:
        """Drive a record created by the stack through pending -> installing -> active."""
        record = await store.add(record)
        await store.update(record, **transition(record, TaskStatus.INSTALLING))
        try:
            await self._run(server, commands)
        except Exception as e:
            await store.update(record, **transition(record, TaskStatus.FAILED, error=str(e)))
            raise
        await store.update(record, **transition(record, TaskStatus.ACTIVE))

    # === Steps ===

    async def verify_access(self, store: RecordStore, server: Server) -> None:
        """Both root and the managed user can log in. Also records the OS."""
        timeout = self.settings.ssh_connect_timeout * 3
        expected = {
            CredentialType.ROOT: "root",
            CredentialType.MANAGED: self.settings.managed_user,
        }
        for credential_type, username in expected.items():
            try:
                result = await self._session(server, credential_type).run_checked(
                    "whoami", timeout
                )
            except RemoteError:
                await store.update(server, connection=ConnectionStatus.FAILED.value)
                raise
            if result.stdout.strip() != username:
                raise AccessVerificationFailed(
                    f"Expected to log in as {username}, got '{result.stdout.strip()}'"
                )

        result = await self._session(server, CredentialType.ROOT).run_checked(
            scripts.detect_os(), timeout
        )
        name, version, codename = (result.stdout.splitlines() + ["", "", ""])[:3]
        await store.update(
            server,
            connection=ConnectionStatus.CONNECTED.value,
            os_name=name or None,
            os_version=version or None,
            os_codename=codename or None,
        )

    async def configure_firewall(self, store: RecordStore, server: Server) -> None:
        await self._run(server, scripts.firewall_enable())
        server_firewall = ServerFirewall(server_id=server.id, is_enabled=True)
        store.session.add(server_firewall)
        await store.session.flush()
        await store.add(
            ServerFirewallRule(
                server_id=server.id,
                firewall_id=server_firewall.id,
                name="SSH",
                port=str(server.ssh_port),
                rule_type="allow",
                status=TaskStatus.ACTIVE.value,
            )
        )

    async def install_runtime(self, store: RecordStore, server: Server) -> None:
        runtime = ServerRuntime(
            server_id=server.id,
            language="php",
            version=self.settings.default_php_version,
            is_cli_default=True,
            is_site_default=True,
        )
        await self._install_record(store, server, runtime, scripts.runtime_install(runtime))

    async def install_reverse_proxy(self, store: RecordStore, server: Server) -> None:
        proxy = ServerReverseProxy(server_id=server.id, type="nginx")
        await self._install_record(store, server, proxy, scripts.reverse_proxy_install(proxy))

    async def install_process_managers(self, store: RecordStore, server: Server) -> None:
        commands = scripts.scheduler_stack_install() + scripts.supervisor_stack_install()
        await self._run(server, commands)
