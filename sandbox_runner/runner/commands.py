"""Command execution against a sandbox runtime.

Thin layer over ``SandboxRuntime.run_command`` that the runner, the bundle
transport and the readiness prober share. It never raises on a non-zero exit
code; callers inspect ``CommandResult.exit_code``.
"""

from sandbox_runner.core.logging import get_logger
from sandbox_runner.sandbox.runtime import CommandResult, SandboxRuntime

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 60

# Longest output fragment included in debug log lines
_LOG_PREVIEW_CHARS = 200


async def run_command(
    runtime: SandboxRuntime,
    command: str,
    timeout: int | None = DEFAULT_COMMAND_TIMEOUT,
    cwd: str | None = None,
) -> CommandResult:
    """Run a shell command in the sandbox and return its result.

    Args:
        runtime: Sandbox runtime to execute in
        command: Shell command (pipes, redirects and ``&&`` chains are fine)
        timeout: Timeout in seconds; ``None`` or ``0`` disables it
        cwd: Working directory for the command

    Returns:
        CommandResult with exit_code, stdout, stderr
    """
    result = await runtime.run_command(command, timeout=timeout, cwd=cwd)

    logger.debug(
        "sandbox_command_completed",
        sandbox_id=runtime.sandbox_id,
        command=command[:_LOG_PREVIEW_CHARS],
        exit_code=result.exit_code,
        output=result.output[:_LOG_PREVIEW_CHARS],
    )
    return result


async def resolve_home_dir(runtime: SandboxRuntime, fallback: str) -> str:
    """Return the sandbox user's home directory, or ``fallback`` if it can't be read."""
    result = await run_command(runtime, 'printf "%s" "$HOME"', timeout=10)
    home = result.stdout.strip()
    if result.exit_code != 0 or not home.startswith("/"):
        logger.debug(
            "sandbox_home_dir_unresolved",
            sandbox_id=runtime.sandbox_id,
            exit_code=result.exit_code,
            fallback=fallback,
        )
        return fallback
    return home
