"""Bootstrap progress tracking.

Steps 1-3 are reported by the bootstrap script running on the server itself
(through the signed callback). Steps 4-8 are written by the stack
provisioner once SSH access works.

Step 1 succeeding means the base image was (re)installed. Anything recorded
for the previous image is wiped by ``reprovision_cleanup``.
"""

import structlog

from stackhand.contracts import ProvisionStackMessage
from stackhand.errors import GuardViolation, ResourceNotFound, ValidationFailed
from stackhand.models import (
    ConnectionStatus,
    ProvisionStatus,
    Server,
    ServerDatabase,
    ServerDatabaseSchema,
    ServerDatabaseUser,
    ServerEvent,
    ServerFirewall,
    ServerFirewallRule,
    ServerReverseProxy,
    ServerRuntime,
    ServerScheduledTask,
    ServerSupervisorTask,
)
from stackhand.redis import PROVISION_QUEUE, RedisStreamClient
from stackhand.store import RecordStore

logger = structlog.get_logger(__name__)

CALLBACK_STEPS = range(1, 4)
ALL_STEPS = range(1, 9)
VERIFY_STEP = 4
FINAL_STEP = 8

STEP_NAMES = {
    1: "Prepare base image",
    2: "Create access users",
    3: "Install SSH keys",
    4: "Verify access",
    5: "Configure firewall",
    6: "Install runtime",
    7: "Install reverse proxy",
    8: "Install scheduler and supervisor",
}

PENDING = "pending"
INSTALLING = "installing"
COMPLETED = "completed"
SUCCESS = "success"
FAILED = "failed"

STEP_LABELS = frozenset({PENDING, INSTALLING, COMPLETED, SUCCESS, FAILED})
SUCCESS_LABELS = frozenset({COMPLETED, SUCCESS})

# Everything installed on top of a base image
REPROVISION_MODELS: tuple[type, ...] = (
    ServerEvent,
    ServerDatabaseUser,
    ServerDatabaseSchema,
    ServerDatabase,
    ServerRuntime,
    ServerReverseProxy,
    ServerFirewallRule,
    ServerFirewall,
)

# What each stack step creates, removed before the step runs again
STEP_MODELS: dict[int, tuple[type, ...]] = {
    5: (ServerFirewallRule, ServerFirewall),
    6: (ServerRuntime,),
    7: (ServerReverseProxy,),
    8: (ServerScheduledTask, ServerSupervisorTask),
}


def is_success(label: str | None) -> bool:
    return label in SUCCESS_LABELS


def validate_step(step: int, status: str, allowed_steps: range = CALLBACK_STEPS) -> None:
    errors = {}
    if step not in allowed_steps:
        errors["step"] = (
            f"Invalid step {step}. Must be between {allowed_steps.start} and "
            f"{allowed_steps.stop - 1}."
        )
    if status not in STEP_LABELS:
        labels = ", ".join(sorted(STEP_LABELS))
        errors["status"] = f"Invalid status '{status}'. Must be one of: {labels}."
    if errors:
        raise ValidationFailed(errors)


class ProvisionStepTracker:
    """Owns ``Server.provision`` and ``Server.provision_status``."""

    def __init__(self, store: RecordStore, queue: RedisStreamClient):
        self.store = store
        self.queue = queue

    @property
    def session(self):
        return self.store.session

    @property
    def broadcaster(self):
        return self.store.broadcaster

    async def get_server(self, server_id: int) -> Server:
        server = await self.session.get(Server, server_id)
        if server is None:
            raise ResourceNotFound("server", server_id)
        return server

    async def report_step(self, server_id: int, step: int, status: str) -> Server:
        """Record a step reported by the bootstrap script."""
        validate_step(step, status)
        server = await self.get_server(server_id)
        log = logger.bind(server_id=server_id, step=step, status=status)

        if step == 1 and is_success(status):
            await self.reprovision_cleanup(server_id, status)
        else:
            await self._merge_step(server, step, status)

        log.info(
            "provision_step_updated",
            message=f"Provision step {step} updated to {status} for server #{server_id}",
        )
        if status == FAILED:
            log.error(
                "provision_step_failed",
                message=f"Provision step {step} failed for server #{server_id}",
            )
        await self.broadcaster.notify_provisioning(server_id)

        if step == CALLBACK_STEPS[-1] and is_success(status):
            await self.start_stack(server, from_step=VERIFY_STEP)
        return server

    async def mark_step(self, server_id: int, step: int, status: str) -> Server:
        """Record progress of a stack step (4-8)."""
        validate_step(step, status, allowed_steps=ALL_STEPS)
        server = await self.get_server(server_id)
        extra = {}
        if step == FINAL_STEP and is_success(status):
            extra["provision_status"] = ProvisionStatus.COMPLETED.value
        await self._merge_step(server, step, status, **extra)
        logger.info("provision_step_marked", server_id=server_id, step=step, status=status)
        await self.broadcaster.notify_provisioning(server_id)
        return server

    async def _merge_step(self, server: Server, step: int, status: str, **extra: str) -> None:
        provision = dict(server.provision or {})
        provision[str(step)] = status
        fields = {"provision": provision, **extra}
        if status == FAILED:
            fields["provision_status"] = ProvisionStatus.FAILED.value
        await self.store.update(server, **fields)

    async def start_stack(self, server: Server, from_step: int) -> ProvisionStackMessage:
        provision = dict(server.provision or {})
        provision[str(from_step)] = INSTALLING
        await self.store.update(
            server,
            provision=provision,
            provision_status=ProvisionStatus.INSTALLING.value,
        )
        message = ProvisionStackMessage(server_id=server.id, resume_from_step=from_step)
        await self.queue.publish_message(PROVISION_QUEUE, message)
        logger.info("provision_stack_enqueued", server_id=server.id, from_step=from_step)
        return message

    async def reprovision_cleanup(self, server_id: int, status: str = COMPLETED) -> dict[str, int]:
        """Delete everything installed under the previous base image.

        Removes provisioning events, databases with their schemas and users,
        runtimes, the reverse proxy, and the firewall with its rules. The
        server restarts its step map at step 1 in the same commit.
        """
        server = await self.get_server(server_id)
        counts = await self.store.reset_server(
            server,
            REPROVISION_MODELS,
            provision={"1": status},
            connection=ConnectionStatus.CONNECTED.value,
            provision_status=ProvisionStatus.INSTALLING.value,
        )
        logger.info("reprovision_cleanup_completed", server_id=server_id, deleted=counts)
        return counts

    async def cleanup_from_step(self, server_id: int, step: int) -> dict[str, int]:
        """Delete what stack steps ``step``..8 created so they can run again."""
        models = tuple(
            model for number in range(step, FINAL_STEP + 1) for model in STEP_MODELS.get(number, ())
        )
        counts = await self.store.purge(server_id, models)
        await self.session.commit()
        logger.info("provision_cleanup_from_step", server_id=server_id, step=step, deleted=counts)
        await self.broadcaster.notify_server(server_id)
        return counts

    async def retry(self, server_id: int) -> Server:
        """Restart a failed bootstrap.

        With SSH keys in place (step 3 succeeded) the stack resumes at the
        first failed stack step. Otherwise the server goes back to waiting
        for the bootstrap script.
        """
        server = await self.get_server(server_id)
        if server.provision_status != ProvisionStatus.FAILED.value:
            raise GuardViolation("Only failed provisioning can be retried")

        if not is_success(server.step_status(3)):
            await self.store.update(
                server,
                connection=ConnectionStatus.PENDING.value,
                provision_status=ProvisionStatus.PENDING.value,
                provision={},
            )
            logger.info("provision_retry_reset", server_id=server_id)
            await self.broadcaster.notify_provisioning(server_id)
            return server

        stack_steps = range(VERIFY_STEP, FINAL_STEP + 1)
        failed_step = next(
            (step for step in stack_steps if server.step_status(step) == FAILED), VERIFY_STEP
        )
        await self.cleanup_from_step(server_id, failed_step)
        await self.store.update(
            server, provision={str(step): COMPLETED for step in range(1, failed_step)}
        )
        await self.start_stack(server, from_step=failed_step)
        logger.info("provision_retry_resumed", server_id=server_id, from_step=failed_step)
        await self.broadcaster.notify_provisioning(server_id)
        return server
