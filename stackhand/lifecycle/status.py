"""Task status vocabulary and the lifecycle state machine.

Every resource kind shares these statuses:

    pending -> installing -> active
                   \\-> failed -> pending (retry)
    active -> updating -> active | failed
    active | failed -> removing -> deleted | <previous status>

``transition`` only computes field changes. Callers persist them through
``RecordStore.update`` so observers get one notification per write.
"""

from enum import Enum
from typing import Any, Protocol

from stackhand.errors import GuardViolation, InvalidTransition


class TaskStatus(str, Enum):
    PENDING = "pending"
    INSTALLING = "installing"
    ACTIVE = "active"
    UPDATING = "updating"
    REMOVING = "removing"
    FAILED = "failed"


TRANSITIONAL = frozenset({TaskStatus.INSTALLING, TaskStatus.UPDATING, TaskStatus.REMOVING})

# Statuses that hold a database category slot
OCCUPYING = frozenset(
    {TaskStatus.PENDING, TaskStatus.INSTALLING, TaskStatus.ACTIVE, TaskStatus.UPDATING}
)

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.INSTALLING}),
    TaskStatus.INSTALLING: frozenset({TaskStatus.ACTIVE, TaskStatus.FAILED}),
    TaskStatus.ACTIVE: frozenset({TaskStatus.REMOVING, TaskStatus.UPDATING}),
    TaskStatus.UPDATING: frozenset({TaskStatus.ACTIVE, TaskStatus.FAILED}),
    # A removal that fails puts back whatever the record held before
    TaskStatus.REMOVING: frozenset({TaskStatus.ACTIVE, TaskStatus.FAILED}),
    TaskStatus.FAILED: frozenset({TaskStatus.PENDING, TaskStatus.REMOVING}),
}


class Guards(Protocol):
    """Kind-specific predicates. Each returns a reason string when blocked."""

    def can_remove(self, record: Any) -> str | None: ...

    def can_retry(self, record: Any) -> str | None: ...


def is_transitional(status: str) -> bool:
    return status in {s.value for s in TRANSITIONAL}


def check_edge(current: str, target: str) -> None:
    """Raise InvalidTransition unless ``current -> target`` is an allowed edge."""
    try:
        source = TaskStatus(current)
        destination = TaskStatus(target)
    except ValueError as e:
        raise InvalidTransition(current, target) from e
    if destination not in ALLOWED_TRANSITIONS[source]:
        raise InvalidTransition(current, target)


def transition(
    record: Any,
    target: TaskStatus,
    guards: Guards | None = None,
    error: str | None = None,
) -> dict[str, Any]:
    """Validate a status change and return the fields it writes.

    The record is never modified here. Guard violations and invalid edges
    raise before anything is returned.
    """
    current = record.status
    if target is TaskStatus.REMOVING and guards is not None:
        reason = guards.can_remove(record)
        if reason:
            raise GuardViolation(reason)
    if target is TaskStatus.PENDING and guards is not None:
        reason = guards.can_retry(record)
        if reason:
            raise GuardViolation(reason)

    if current == target.value:
        return {}

    check_edge(current, target.value)

    changes: dict[str, Any] = {"status": target.value}
    if target is TaskStatus.REMOVING:
        changes["previous_status"] = current
    elif target is TaskStatus.FAILED:
        changes["error_log"] = error or "Operation failed"
    elif target is TaskStatus.PENDING:
        changes["error_log"] = None
    elif target is TaskStatus.ACTIVE and current != TaskStatus.REMOVING.value:
        changes["error_log"] = None
    return changes


def rollback_removal(record: Any, error: str) -> dict[str, Any]:
    """Fields that undo a failed removal.

    The record returns to the status it had before the removal began
    (``failed`` when unknown) and keeps the failure output in ``error_log``.
    """
    if record.status != TaskStatus.REMOVING.value:
        raise InvalidTransition(record.status, record.previous_status or TaskStatus.FAILED.value)
    restored = record.previous_status or TaskStatus.FAILED.value
    check_edge(TaskStatus.REMOVING.value, restored)
    return {"status": restored, "previous_status": None, "error_log": error}
