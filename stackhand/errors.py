"""Exception hierarchy.

Synchronous errors (validation, authorization, guards) are raised before any
write or enqueue. Remote errors are raised by RemoteSession and caught inside
lifecycle jobs, where they end up in ``error_log``.
"""


class StackhandError(Exception):
    """Base class for all stackhand errors."""


class ValidationFailed(StackhandError):
    """Input rejected with field-level messages."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationFailed":
        return cls({field: message})


class AuthorizationDenied(StackhandError):
    """Caller does not own the target server or resource."""


class ResourceNotFound(StackhandError):
    """Server or resource record is gone."""

    def __init__(self, kind: str, resource_id: int | str):
        self.kind = kind
        self.resource_id = resource_id
        super().__init__(f"{kind} #{resource_id} not found")


class GuardViolation(StackhandError):
    """A kind-specific rule blocks the requested operation."""


class InvalidTransition(StackhandError):
    """Status change is not an edge of the lifecycle state machine."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from {current} to {target}")


class RemoteError(StackhandError):
    """Base class for remote execution failures."""


class RemoteConnectionError(RemoteError):
    """Connection or authentication to the remote host failed."""


class RemoteTimeout(RemoteError):
    """Remote command did not finish within its timeout."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g} seconds: {command}")


class RemoteCommandFailed(RemoteError):
    """Remote command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stdout: str = "", stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        message = f"Command failed: {command}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)
