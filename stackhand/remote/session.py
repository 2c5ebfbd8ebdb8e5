"""One-command-per-call SSH execution.

Each call spawns the system ``ssh`` client in batch mode. The orchestrator
never holds an interactive shell open.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import time

import structlog

from stackhand.errors import RemoteCommandFailed, RemoteConnectionError, RemoteTimeout

from .credentials import Credential

logger = structlog.get_logger(__name__)

# ssh exits with 255 when the connection itself failed
SSH_CONNECTION_ERROR_EXIT = 255

# Keep error_log readable
MAX_OUTPUT_LENGTH = 4000


@dataclass(frozen=True)
class RemoteResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check(self, command: str) -> "RemoteResult":
        """Raise RemoteCommandFailed on a non-zero exit."""
        if not self.ok:
            raise RemoteCommandFailed(
                command,
                self.exit_code,
                truncate(self.stdout),
                truncate(self.stderr),
            )
        return self


def truncate(output: str, limit: int = MAX_OUTPUT_LENGTH) -> str:
    if len(output) <= limit:
        return output
    return "...[truncated]...\n" + output[-limit:]


class RemoteSession:
    """Executes single commands on ``host`` as ``credential.username``."""

    def __init__(
        self,
        host: str,
        port: int,
        credential: Credential,
        connect_timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.credential = credential
        self.connect_timeout = connect_timeout

    def _ssh_args(self, command: str) -> list[str]:
        return [
            "ssh",
            "-i",
            self.credential.key_path,
            "-p",
            str(self.port),
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            f"{self.credential.username}@{self.host}",
            command,
        ]

    async def run(self, command: str, timeout: float) -> RemoteResult:
        """Run one command and capture its result.

        Raises:
            RemoteConnectionError: ssh could not be started or could not connect.
            RemoteTimeout: the command ran longer than ``timeout`` seconds.
                The remote side may keep running.
        """
        start = time.time()
        try:
            process = await asyncio.create_subprocess_exec(
                *self._ssh_args(command),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RemoteConnectionError(f"Could not start ssh: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError as e:
            process.kill()
            await process.wait()
            logger.warning(
                "remote_command_timeout",
                host=self.host,
                user=self.credential.username,
                timeout=timeout,
            )
            raise RemoteTimeout(command, timeout) from e
        except BaseException:
            # Cancelled while waiting; the ssh child must not outlive the job
            if process.returncode is None:
                process.kill()
                await asyncio.shield(process.wait())
            raise

        result = RemoteResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        duration_ms = (time.time() - start) * 1000
        logger.debug(
            "remote_command_finished",
            host=self.host,
            user=self.credential.username,
            exit_code=result.exit_code,
            duration_ms=round(duration_ms, 2),
        )

        if result.exit_code == SSH_CONNECTION_ERROR_EXIT:
            raise RemoteConnectionError(
                f"SSH connection to {self.credential.username}@{self.host}:{self.port} failed: "
                f"{truncate(result.stderr.strip())}"
            )
        return result

    async def run_checked(self, command: str, timeout: float) -> RemoteResult:
        result = await self.run(command, timeout)
        return result.check(command)

    async def run_all(self, commands: list[str], timeout: float) -> list[RemoteResult]:
        """Run commands in order, stopping at the first failure."""
        results = []
        for command in commands:
            results.append(await self.run_checked(command, timeout))
        return results


# (host, port, credential) -> session. Tests swap in fakes.
SessionFactory = Callable[[str, int, Credential], RemoteSession]


def default_session_factory(connect_timeout: int = 10) -> SessionFactory:
    def factory(host: str, port: int, credential: Credential) -> RemoteSession:
        return RemoteSession(host, port, credential, connect_timeout=connect_timeout)

    return factory
