"""Sandbox Runner for bundled server deployments.

Drives one sandbox per session through its lifecycle:

- prepare: create a sandbox, ship the build output, install dependencies
- start: launch the server detached, resolve its public URL, wait for readiness
- exec / get_logs / get_status: interact with a live session
- stop: delete the sandbox and forget the session

The sandbox provider is reached only through a runtime factory handed to the
constructor, so alternate providers (or fakes in tests) slot in without
touching this module.
"""

import asyncio
import shlex
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from sandbox_runner.config import Settings, settings as default_settings
from sandbox_runner.core.logging import get_logger
from sandbox_runner.runner.bundle import transport_bundle
from sandbox_runner.runner.commands import DEFAULT_COMMAND_TIMEOUT, resolve_home_dir, run_command
from sandbox_runner.runner.models import RunnerSession, RunnerStartOptions, SessionStatus
from sandbox_runner.runner.readiness import wait_until_ready
from sandbox_runner.runner.registry import RegistryEntry, SessionRegistry, can_transition
from sandbox_runner.sandbox.provider import RuntimeFactory, make_runtime_factory
from sandbox_runner.sandbox.runtime import CommandResult

logger = get_logger(__name__)

# Environment variables injected into the server process so it can build
# self-referential URLs matching the public preview address
SERVER_HOST_ENV = "SERVER_HOST"
SERVER_PORT_ENV = "SERVER_PORT"
SERVER_PROTOCOL_ENV = "SERVER_PROTOCOL"


def public_address(url: str) -> tuple[str, str, str]:
    """Split a public URL into (host, port, protocol).

    The port defaults to 443/80 from the scheme when the URL omits it.
    """
    parsed = urlparse(url)
    protocol = parsed.scheme or "https"
    port = parsed.port or (443 if protocol == "https" else 80)
    return parsed.hostname or "", str(port), protocol


class SandboxRunner:
    """Runs bundled servers in disposable sandboxes.

    Sessions are keyed by the provider-assigned sandbox id. The runner owns
    its registry; every session it returns is a copy.
    """

    def __init__(
        self,
        runtime_factory: RuntimeFactory | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            runtime_factory: Creates a sandbox runtime from (env_vars, ports).
                Defaults to the configured provider.
            settings: Settings override (defaults to the process settings)
        """
        self._settings = settings or default_settings
        self._runtime_factory = runtime_factory or make_runtime_factory(self._settings)
        self._registry = SessionRegistry()
        # Metrics counters
        self._total_created: int = 0
        self._total_stopped: int = 0
        self._server_failures: int = 0
        self._readiness_timeouts: int = 0

    def _resolve_port(self, options: RunnerStartOptions) -> int:
        return options.port or self._settings.runner_default_port

    async def prepare(self, options: RunnerStartOptions) -> RunnerSession:
        """Create a sandbox and install the bundle from ``options.output_directory``.

        Returns:
            Copy of the new session, status ``pending``

        Raises:
            BundleTransportError: If archiving, upload, extraction or install fails
        """
        port = self._resolve_port(options)

        logger.info("sandbox_creating", port=port, output_directory=options.output_directory)
        runtime = await self._runtime_factory(dict(options.env_vars), [port])
        self._total_created += 1

        session = RunnerSession(id=runtime.sandbox_id, port=port, status=SessionStatus.PREPARING)
        entry = self._registry.register(session, runtime, env_vars=options.env_vars)

        try:
            entry.root_dir = await resolve_home_dir(
                runtime, self._settings.runner_root_dir_fallback
            )
            logger.info(
                "sandbox_bundle_uploading", session_id=session.id, root_dir=entry.root_dir
            )
            await transport_bundle(
                runtime,
                options.output_directory,
                entry.root_dir,
                exclude=self._settings.bundle_excludes_list,
                extract_timeout=self._settings.runner_extract_timeout,
                install_command=self._settings.runner_install_command,
                install_timeout=self._settings.runner_install_timeout,
            )
        except Exception as e:
            logger.error("sandbox_prepare_failed", session_id=session.id, error=str(e))
            if self._settings.runner_cleanup_on_prepare_failure:
                await self._discard(session.id)
            raise

        prepared = self._registry.transition(session.id, SessionStatus.PENDING)
        logger.info("sandbox_prepared", session_id=session.id, port=port)
        return prepared

    async def _discard(self, session_id: str) -> None:
        """Kill a half-prepared sandbox and drop it from the registry."""
        entry = self._registry.remove(session_id)
        if entry is None:
            return
        try:
            await entry.runtime.kill()
            logger.info("sandbox_discarded", session_id=session_id)
        except Exception as e:
            logger.warning("sandbox_discard_failed", session_id=session_id, error=str(e))

    async def start(self, options: RunnerStartOptions) -> RunnerSession:
        """Start the server for a prepared session, preparing one if needed.

        The server command runs detached; its failure later flips the session
        to ``error`` without affecting this call. A readiness timeout is logged
        and the session is still reported as ``running``.

        Returns:
            Copy of the session, status ``running``
        """
        port = self._resolve_port(options)
        start_command = options.start_command or self._settings.runner_default_start_command
        timeout = options.timeout
        if timeout is None:
            timeout = self._settings.runner_default_timeout

        entry = self._registry.find_pending(port)
        if entry is None:
            prepared = await self.prepare(options)
            entry = self._registry.require(prepared.id)
        entry.claimed = True

        session_id = entry.session.id
        runtime = entry.runtime
        logger.info("sandbox_server_starting", session_id=session_id, port=port)

        # Resolve the public URL first so it can be injected into the server env
        url = await runtime.get_host_url(port)
        host, public_port, protocol = public_address(url)

        command = self._build_start_command(
            entry,
            port=port,
            start_command=start_command,
            host=host,
            public_port=public_port,
            protocol=protocol,
        )
        entry.server_task = asyncio.create_task(runtime.run_command(command, timeout=None))
        entry.server_task.add_done_callback(
            lambda task: self._on_server_exit(session_id, task)
        )

        ready = await wait_until_ready(
            runtime,
            port,
            timeout=timeout,
            interval=self._settings.runner_probe_interval,
            attempt_timeout=self._settings.runner_probe_attempt_timeout,
        )
        if not ready:
            self._readiness_timeouts += 1
            logger.warning(
                "sandbox_server_not_ready",
                session_id=session_id,
                port=port,
                timeout=timeout,
            )

        if self._registry.get_entry(session_id) is not entry:
            # Stopped while we were waiting on readiness
            return RunnerSession(id=session_id, status=SessionStatus.STOPPED, port=port, url=url)

        running = self._registry.transition(
            session_id,
            SessionStatus.RUNNING,
            url=url,
            started_at=datetime.now(timezone.utc),
        )
        if entry.server_error is not None:
            # The detached server died before readiness finished
            return self._registry.transition(session_id, SessionStatus.ERROR)

        logger.info("sandbox_server_running", session_id=session_id, url=url)
        return running

    def _build_start_command(
        self,
        entry: RegistryEntry,
        *,
        port: int,
        start_command: str,
        host: str,
        public_port: str,
        protocol: str,
    ) -> str:
        env = {
            "PORT": str(port),
            SERVER_HOST_ENV: host,
            SERVER_PORT_ENV: public_port,
            SERVER_PROTOCOL_ENV: protocol,
        }
        assignments = " ".join(f"{key}={shlex.quote(value)}" for key, value in env.items())
        root_dir = entry.root_dir or self._settings.runner_root_dir_fallback
        log_path = shlex.quote(self._settings.runner_log_path)
        return (
            f"cd {shlex.quote(root_dir)} && {assignments} {start_command} "
            f"2>&1 | tee {log_path}"
        )

    def _on_server_exit(self, session_id: str, task: asyncio.Task[CommandResult]) -> None:
        """Record a detached server exit against its session."""
        if task.cancelled():
            return

        entry = self._registry.get_entry(session_id)
        if entry is None or entry.server_task is not task:
            # Session was stopped; its sandbox going away is expected
            return

        error = task.exception()
        if error is None:
            result = task.result()
            if result.exit_code == 0:
                logger.info("sandbox_server_exited", session_id=session_id)
                return
            reason = f"exit code {result.exit_code}: {result.output[-500:]}"
        else:
            reason = str(error)

        self._server_failures += 1
        entry.server_error = reason
        logger.error("sandbox_server_process_failed", session_id=session_id, reason=reason)
        # While start() is still probing the session is pending; start() applies
        # the error once it has marked the session running
        if entry.session.status == SessionStatus.RUNNING:
            self._registry.transition(session_id, SessionStatus.ERROR)

    async def stop(self, session_id: str) -> None:
        """Delete the session's sandbox and remove it from the registry.

        Raises:
            SessionNotFoundError: If the session is unknown (including already stopped)
        """
        entry = self._registry.require(session_id)
        logger.info("sandbox_stopping", session_id=session_id)
        entry.claimed = True

        task = entry.server_task
        entry.server_task = None
        if task is not None and not task.done():
            task.cancel()

        try:
            await entry.runtime.kill()
        except Exception as e:
            # The server is gone but the sandbox may not be; keep the session
            # registered so stop() can be retried
            entry.server_error = f"stop failed: {e}"
            if can_transition(entry.session.status, SessionStatus.ERROR):
                self._registry.transition(session_id, SessionStatus.ERROR)
            logger.error("sandbox_stop_failed", session_id=session_id, error=str(e))
            raise

        self._registry.transition(session_id, SessionStatus.STOPPED)
        self._registry.remove(session_id)
        self._total_stopped += 1

        logger.info("sandbox_stopped", session_id=session_id)

    async def get_status(self, session_id: str) -> RunnerSession | None:
        """Return a copy of the session, or None if unknown."""
        return self._registry.snapshot(session_id)

    async def exec(
        self,
        session_id: str,
        command: str,
        timeout: int | None = None,
    ) -> CommandResult:
        """Run a command in the session's sandbox.

        Raises:
            SessionNotFoundError: If the session is unknown
        """
        entry = self._registry.require(session_id)
        if timeout is None:
            timeout = DEFAULT_COMMAND_TIMEOUT
        return await run_command(entry.runtime, command, timeout=timeout)

    async def get_logs(self, session_id: str, tail: int | None = None) -> str:
        """Return the last ``tail`` lines of the server log ("" if there is none).

        Raises:
            SessionNotFoundError: If the session is unknown
        """
        entry = self._registry.require(session_id)
        lines = tail if tail is not None else self._settings.runner_log_tail_lines
        log_path = shlex.quote(self._settings.runner_log_path)
        result = await run_command(
            entry.runtime,
            f"tail -n {int(lines)} {log_path} 2>/dev/null || echo \"\"",
        )
        return result.stdout

    async def list_sessions(self) -> list[RunnerSession]:
        """Copies of all registered sessions."""
        return self._registry.list_sessions()

    async def stop_all(self) -> int:
        """Stop every session, continuing past individual failures.

        Returns:
            Number of sessions stopped
        """
        stopped = 0
        for session_id in self._registry.session_ids():
            try:
                await self.stop(session_id)
                stopped += 1
            except Exception as e:
                logger.warning("sandbox_stop_failed", session_id=session_id, error=str(e))

        logger.info("sandbox_all_sessions_stopped", count=stopped)
        return stopped

    @property
    def active_session_count(self) -> int:
        """Get the number of registered sessions."""
        return len(self._registry)

    def get_metrics(self) -> dict[str, Any]:
        """Get runner metrics.

        Returns:
            Dict with metrics
        """
        return {
            "active_sessions": len(self._registry),
            "total_created": self._total_created,
            "total_stopped": self._total_stopped,
            "server_failures": self._server_failures,
            "readiness_timeouts": self._readiness_timeouts,
        }
