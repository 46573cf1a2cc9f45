"""Readiness polling for a freshly started server inside a sandbox."""

import asyncio
import time

from sandbox_runner.core.logging import get_logger
from sandbox_runner.runner.commands import run_command
from sandbox_runner.sandbox.runtime import SandboxRuntime

logger = get_logger(__name__)


def build_probe_command(port: int) -> str:
    return f"curl -sf http://localhost:{port}/ -o /dev/null"


async def wait_until_ready(
    runtime: SandboxRuntime,
    port: int,
    timeout: float,
    interval: float = 1.0,
    attempt_timeout: int = 5,
) -> bool:
    """Poll the server on ``port`` until it answers or ``timeout`` elapses.

    Individual attempts never raise; a failed or errored attempt just means
    "not yet". Only the overall deadline is observable, through the return
    value.

    Args:
        runtime: Sandbox the server runs in
        port: Port the server listens on inside the sandbox
        timeout: Overall deadline in seconds
        interval: Sleep between attempts in seconds
        attempt_timeout: Per-attempt command timeout in seconds

    Returns:
        True if the server answered before the deadline, False otherwise
    """
    command = build_probe_command(port)
    deadline = time.monotonic() + timeout
    attempt = 0

    while time.monotonic() < deadline:
        attempt += 1
        try:
            result = await run_command(runtime, command, timeout=attempt_timeout)
            if result.exit_code == 0:
                logger.info(
                    "sandbox_server_port_ready",
                    sandbox_id=runtime.sandbox_id,
                    port=port,
                    attempt=attempt,
                )
                return True
        except Exception as e:
            logger.debug(
                "sandbox_readiness_attempt_errored",
                sandbox_id=runtime.sandbox_id,
                attempt=attempt,
                error=str(e),
            )
        await asyncio.sleep(interval)

    return False
