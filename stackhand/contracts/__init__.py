"""Queue message contracts."""

from .base import BaseMessage, QueueMeta
from .queues import LifecycleJobMessage, Operation, ProvisionStackMessage

__all__ = [
    "QueueMeta",
    "BaseMessage",
    "Operation",
    "LifecycleJobMessage",
    "ProvisionStackMessage",
]
