"""Mount contexts: run mount commands on the host or inside a sandbox."""

import asyncio
import os
import shlex
import sys
from pathlib import Path

from sandbox_runner.core.logging import get_logger
from sandbox_runner.mounts.types import MountContext, MountLogger
from sandbox_runner.sandbox.runtime import CommandResult, SandboxRuntime

logger = get_logger(__name__)

DEFAULT_MOUNT_COMMAND_TIMEOUT = 60
TIMEOUT_EXIT_CODE = 124
COMMAND_NOT_FOUND_EXIT_CODE = 127


def _host_platform() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def local_mount_context(
    mount_logger: MountLogger | None = None,
    platform: str | None = None,
) -> MountContext:
    """Context that runs mount commands on this machine.

    Commands are executed directly from their argv, never through a shell.
    """

    async def run(
        command: str,
        args: list[str],
        timeout: float | None = DEFAULT_MOUNT_COMMAND_TIMEOUT,
    ) -> CommandResult:
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            return CommandResult(exit_code=COMMAND_NOT_FOUND_EXIT_CODE, stdout="", stderr=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout="",
                stderr=f"{command} timed out after {timeout}s",
            )

        return CommandResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def write_file(path: str, content: str) -> None:
        def _write() -> None:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(target, 0o600)

        await asyncio.to_thread(_write)

    return MountContext(
        run=run,
        platform=platform or _host_platform(),
        logger=mount_logger or logger,
        write_file=write_file,
    )


def sandbox_mount_context(
    runtime: SandboxRuntime,
    mount_logger: MountLogger | None = None,
) -> MountContext:
    """Context that runs mount commands inside a sandbox (always Linux).

    Arguments are shell-quoted before they reach the sandbox shell.
    """

    async def run(
        command: str,
        args: list[str],
        timeout: float | None = DEFAULT_MOUNT_COMMAND_TIMEOUT,
    ) -> CommandResult:
        return await runtime.run_command(
            shlex.join([command, *args]),
            timeout=int(timeout) if timeout else DEFAULT_MOUNT_COMMAND_TIMEOUT,
        )

    async def write_file(path: str, content: str) -> None:
        quoted = shlex.quote(path)
        # Create the file private before any secret lands in it
        await runtime.run_command(f"(umask 077 && : > {quoted})")
        await runtime.write_file(path, content)
        result = await runtime.run_command(f"chmod 600 {quoted}")
        if result.exit_code != 0:
            raise OSError(f"chmod 600 {path} failed: {result.output}")

    return MountContext(
        run=run,
        platform="linux",
        logger=mount_logger or logger.bind(sandbox_id=runtime.sandbox_id),
        write_file=write_file,
    )
