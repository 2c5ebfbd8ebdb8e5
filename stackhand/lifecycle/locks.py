"""Per-resource single-flight lock backed by Redis."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import LockError
import structlog

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def single_flight(client: redis.Redis, key: str, timeout: int) -> AsyncIterator[bool]:
    """Try to take ``key`` without waiting.

    Yields whether the lock was acquired. The lock expires on its own after
    ``timeout`` seconds so a crashed worker cannot hold it forever.
    """
    lock = client.lock(key, timeout=timeout, blocking=False)
    acquired = await lock.acquire()
    try:
        yield acquired
    finally:
        if acquired:
            try:
                await lock.release()
            except LockError:
                logger.warning("lifecycle_lock_expired", key=key, timeout=timeout)
