"""Sandbox Runtime Protocol.

Defines the narrow capability interface the runner consumes from a sandbox
provider: command execution, file transfer, public port URLs and teardown.
Every provider adapter (E2B, BoxLite) implements this protocol; the runner and
the mount subsystem never touch a provider SDK directly.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass
class CommandResult:
    """Result of a command execution in a sandbox.

    A non-zero ``exit_code`` is data, not an exception.
    """

    exit_code: int
    stdout: str
    stderr: str = ""

    @property
    def output(self) -> str:
        """Combined stdout and stderr, in that order."""
        if self.stdout and self.stderr:
            return self.stdout.rstrip("\n") + "\n" + self.stderr
        return self.stdout or self.stderr

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class SandboxRuntime(Protocol):
    """Protocol for sandbox runtime operations."""

    @property
    def sandbox_id(self) -> str:
        """Get the unique identifier for this sandbox."""
        ...

    async def run_command(
        self,
        command: str,
        timeout: int | None = 60,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run a shell command in the sandbox.

        Args:
            command: Shell command to execute (pipes and redirects allowed)
            timeout: Timeout in seconds; ``None`` or ``0`` means no limit
            cwd: Working directory for the command

        Returns:
            CommandResult with exit_code, stdout, stderr
        """
        ...

    async def read_file(
        self,
        path: str,
        format: str = "text",
    ) -> bytes | str:
        """Read a file from the sandbox."""
        ...

    async def write_file(
        self,
        path: str,
        content: bytes | str,
    ) -> None:
        """Write content to a file in the sandbox."""
        ...

    async def upload_file(self, local_path: str, remote_path: str) -> None:
        """Upload a local file to ``remote_path`` inside the sandbox."""
        ...

    async def get_host_url(self, port: int) -> str:
        """Get the public URL (with scheme) for a port in the sandbox."""
        ...

    async def kill(self) -> None:
        """Terminate and clean up the sandbox."""
        ...
