"""Messages carried by the worker queues."""

from enum import Enum

from pydantic import Field

from .base import BaseMessage


class Operation(str, Enum):
    INSTALL = "install"
    REMOVE = "remove"
    UPDATE = "update"


class LifecycleJobMessage(BaseMessage):
    """Run one lifecycle operation for one resource record."""

    server_id: int
    kind: str
    resource_id: int
    operation: Operation


class ProvisionStackMessage(BaseMessage):
    """Verify access to a bootstrapped server and install its base stack."""

    server_id: int
    resume_from_step: int = Field(default=4, ge=4, le=8)
