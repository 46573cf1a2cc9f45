"""E2B Runtime adapter.

Wraps E2B's AsyncSandbox to satisfy the SandboxRuntime protocol.
"""

import asyncio
from pathlib import Path

from e2b import AsyncSandbox, CommandExitException, TimeoutException

from sandbox_runner.core.logging import get_logger
from sandbox_runner.sandbox.runtime import CommandResult

logger = get_logger(__name__)

# Exit code reported when the SDK gives up waiting on a command (matches coreutils timeout)
TIMEOUT_EXIT_CODE = 124


class E2BRuntime:
    """Adapter wrapping AsyncSandbox to satisfy SandboxRuntime protocol.

    Maps protocol methods to E2B SDK calls:
    - run_command()  -> sandbox.commands.run()
    - read_file()    -> sandbox.files.read()
    - write_file()   -> sandbox.files.write()
    - upload_file()  -> sandbox.files.write() with the local file's bytes
    - get_host_url() -> sandbox.get_host()
    - kill()         -> sandbox.kill()

    The SDK raises ``CommandExitException`` for non-zero exits; it is folded
    back into a CommandResult so callers only ever inspect ``exit_code``.
    """

    def __init__(self, sandbox: AsyncSandbox) -> None:
        self._sandbox = sandbox

    @property
    def sandbox_id(self) -> str:
        """Get the E2B sandbox ID."""
        return self._sandbox.sandbox_id

    async def run_command(
        self,
        command: str,
        timeout: int | None = 60,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run a command via E2B sandbox."""
        # E2B treats 0 as "no limit"
        kwargs: dict = {"timeout": timeout or 0}
        if cwd is not None:
            kwargs["cwd"] = cwd
        try:
            result = await self._sandbox.commands.run(command, **kwargs)
        except CommandExitException as e:
            return CommandResult(
                exit_code=e.exit_code,
                stdout=e.stdout or "",
                stderr=e.stderr or "",
            )
        except TimeoutException:
            return CommandResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
            )
        return CommandResult(
            exit_code=result.exit_code,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    async def read_file(
        self,
        path: str,
        format: str = "text",
    ) -> bytes | str:
        """Read a file via E2B sandbox."""
        return await self._sandbox.files.read(path, format=format)

    async def write_file(
        self,
        path: str,
        content: bytes | str,
    ) -> None:
        """Write a file via E2B sandbox."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        await self._sandbox.files.write(path, content)

    async def upload_file(self, local_path: str, remote_path: str) -> None:
        """Upload a local file via E2B sandbox."""
        data = await asyncio.to_thread(Path(local_path).read_bytes)
        await self._sandbox.files.write(remote_path, data)
        logger.debug(
            "e2b_file_uploaded",
            sandbox_id=self.sandbox_id,
            remote_path=remote_path,
            bytes=len(data),
        )

    async def get_host_url(self, port: int) -> str:
        """Get the public host URL for a port via E2B.

        Returns a full URL with scheme, e.g. "https://4111-sandbox-id.e2b.app".
        """
        return f"https://{self._sandbox.get_host(port)}"

    async def kill(self) -> None:
        """Kill the E2B sandbox."""
        await self._sandbox.kill()

    @property
    def raw_sandbox(self) -> AsyncSandbox:
        """Access the underlying AsyncSandbox for E2B-specific operations."""
        return self._sandbox

