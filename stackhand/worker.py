"""Queue worker: consumes lifecycle and provisioning jobs.

Run standalone: stackhand worker
"""

import asyncio
import os
import signal

from pydantic import ValidationError
import structlog

from stackhand.api.database import async_session_maker
from stackhand.broadcast import EventBroadcaster, RedisEventPublisher
from stackhand.config import get_settings
from stackhand.contracts import LifecycleJobMessage, ProvisionStackMessage
from stackhand.lifecycle.jobs import LifecycleJob
from stackhand.logging import clear_context, new_correlation_id, set_correlation_id, setup_logging
from stackhand.provisioning.stack import StackProvisioner
from stackhand.redis import (
    ALL_QUEUES,
    LIFECYCLE_QUEUE,
    PROVISION_QUEUE,
    WORKER_GROUP,
    RedisStreamClient,
    StreamMessage,
)
from stackhand.remote import default_session_factory

logger = structlog.get_logger(__name__)


class Worker:
    """Reads one message at a time from every queue and dispatches it."""

    def __init__(
        self,
        queue: RedisStreamClient,
        lifecycle_job: LifecycleJob,
        provisioner: StackProvisioner,
        consumer_name: str | None = None,
        block_ms: int = 5000,
    ):
        self.queue = queue
        self.lifecycle_job = lifecycle_job
        self.provisioner = provisioner
        self.consumer_name = consumer_name or f"worker-{os.getpid()}"
        self.block_ms = block_ms
        self._shutdown = False

    def request_shutdown(self) -> None:
        logger.info("worker_shutdown_requested", consumer=self.consumer_name)
        self._shutdown = True

    async def setup(self) -> None:
        for stream in ALL_QUEUES:
            await self.queue.ensure_consumer_group(stream, WORKER_GROUP)

    async def process(self, message: StreamMessage) -> None:
        """Run the job behind ``message`` and ack it.

        Malformed messages are acked and dropped. Unexpected errors leave the
        message pending so it gets redelivered.
        """
        correlation_id = message.data.get("correlation_id") or new_correlation_id("job")
        set_correlation_id(correlation_id)
        structlog.contextvars.bind_contextvars(stream=message.stream, message_id=message.message_id)
        try:
            if message.stream == LIFECYCLE_QUEUE:
                job = LifecycleJobMessage.model_validate(message.data)
                outcome = await self.lifecycle_job.handle(job)
                logger.info("lifecycle_message_processed", outcome=outcome.value)
            elif message.stream == PROVISION_QUEUE:
                stack = ProvisionStackMessage.model_validate(message.data)
                completed = await self.provisioner.handle(stack)
                logger.info("provision_message_processed", completed=completed)
            else:
                logger.warning("message_from_unknown_stream")
        except ValidationError as e:
            logger.error("message_invalid", errors=e.errors(include_url=False))
        except Exception as e:
            logger.error(
                "message_processing_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return
        finally:
            clear_context()

        await self.queue.ack(message.stream, WORKER_GROUP, message.message_id)

    async def run_once(self) -> int:
        messages = await self.queue.read_group(
            list(ALL_QUEUES), WORKER_GROUP, self.consumer_name, block_ms=self.block_ms
        )
        for message in messages:
            await self.process(message)
        return len(messages)

    async def run(self) -> None:
        await self.setup()
        logger.info("worker_started", consumer=self.consumer_name, queues=list(ALL_QUEUES))
        while not self._shutdown:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("worker_cancelled")
                break
            except Exception as e:
                logger.error("worker_loop_error", error=str(e), error_type=type(e).__name__)
                await asyncio.sleep(1)
        logger.info("worker_stopped", consumer=self.consumer_name)


async def run_worker() -> None:
    settings = get_settings()
    setup_logging(
        service_name=f"{settings.service_name}-worker",
        log_format=settings.log_format,
        log_level=settings.log_level,
    )

    queue = RedisStreamClient(settings.redis_url)
    await queue.connect()
    broadcaster = EventBroadcaster(RedisEventPublisher(queue.redis))
    session_factory = default_session_factory(settings.ssh_connect_timeout)

    worker = Worker(
        queue,
        LifecycleJob(async_session_maker, queue.redis, broadcaster, settings, session_factory),
        StackProvisioner(
            async_session_maker, queue.redis, queue, broadcaster, settings, session_factory
        ),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.request_shutdown)

    try:
        await worker.run()
    finally:
        await queue.close()


if __name__ == "__main__":
    asyncio.run(run_worker())
