"""Redis streams plumbing."""

from .client import RedisStreamClient, StreamMessage
from .queues import ALL_QUEUES, LIFECYCLE_QUEUE, PROVISION_QUEUE, WORKER_GROUP

__all__ = [
    "RedisStreamClient",
    "StreamMessage",
    "LIFECYCLE_QUEUE",
    "PROVISION_QUEUE",
    "WORKER_GROUP",
    "ALL_QUEUES",
]
