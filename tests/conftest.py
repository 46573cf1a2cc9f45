"""Shared fixtures: an in-memory sandbox runtime and a provider that hands them out."""

import asyncio
import tarfile
from collections.abc import Callable

import pytest

from sandbox_runner.config import Settings
from sandbox_runner.sandbox.runtime import CommandResult

HOME_COMMAND = 'printf "%s" "$HOME"'


class FakeRuntime:
    """SandboxRuntime double that records commands and uploads.

    The detached server command (the one piped through ``tee``) blocks until
    ``finish_server`` is called, like a real long-running server.
    """

    def __init__(self, sandbox_id: str = "sbx-1", home: str = "/home/user"):
        self._sandbox_id = sandbox_id
        self.home = home
        self.commands: list[str] = []
        self.uploads: list[tuple[str, list[str]]] = []
        self.files: dict[str, bytes | str] = {}
        self.env_vars: dict[str, str] = {}
        self.ports: list[int] = []
        self.killed = False
        self.ready = True
        # Remote stage results, keyed by a substring of the command
        self.results: dict[str, CommandResult] = {}
        self.upload_error: Exception | None = None
        self.server_result: CommandResult | None = None
        self._server_done = asyncio.Event()

    @property
    def sandbox_id(self) -> str:
        return self._sandbox_id

    async def run_command(
        self,
        command: str,
        timeout: int | None = 60,
        cwd: str | None = None,
    ) -> CommandResult:
        self.commands.append(command)

        if "| tee " in command:
            if self.server_result is None:
                await self._server_done.wait()
            return self.server_result or CommandResult(exit_code=0, stdout="")

        for fragment, result in self.results.items():
            if fragment in command:
                return result
        if command == HOME_COMMAND:
            return CommandResult(exit_code=0, stdout=self.home)
        if command.startswith("curl -sf"):
            return CommandResult(exit_code=0 if self.ready else 7, stdout="")
        return CommandResult(exit_code=0, stdout="")

    def finish_server(self, result: CommandResult) -> None:
        self.server_result = result
        self._server_done.set()

    async def read_file(self, path: str, format: str = "text") -> bytes | str:
        return self.files[path]

    async def write_file(self, path: str, content: bytes | str) -> None:
        self.files[path] = content

    async def upload_file(self, local_path: str, remote_path: str) -> None:
        if self.upload_error is not None:
            raise self.upload_error
        with tarfile.open(local_path, mode="r:gz") as tar:
            self.uploads.append((remote_path, tar.getnames()))

    async def get_host_url(self, port: int) -> str:
        return f"https://{port}-{self._sandbox_id}.e2b.app"

    async def kill(self) -> None:
        self.killed = True


class FakeProvider:
    """Runtime factory that creates FakeRuntimes and remembers them."""

    def __init__(self) -> None:
        self.runtimes: list[FakeRuntime] = []
        self.configure: Callable[[FakeRuntime], None] | None = None

    async def __call__(self, env_vars: dict[str, str], ports: list[int]) -> FakeRuntime:
        runtime = FakeRuntime(sandbox_id=f"sbx-{len(self.runtimes) + 1}")
        runtime.env_vars = env_vars
        runtime.ports = ports
        if self.configure is not None:
            self.configure(runtime)
        self.runtimes.append(runtime)
        return runtime

    @property
    def last(self) -> FakeRuntime:
        return self.runtimes[-1]


async def drain_event_loop(rounds: int = 5) -> None:
    """Let finished tasks run their done callbacks."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def runner_settings() -> Settings:
    """Settings with fast probing and no .env influence."""
    return Settings(
        _env_file=None,
        sandbox_provider="e2b",
        runner_probe_interval=0.01,
        runner_probe_attempt_timeout=1,
        runner_default_timeout=1,
    )


@pytest.fixture
def bundle_dir(tmp_path):
    """A small build output directory with an installed dependency tree."""
    dist = tmp_path / "dist"
    (dist / "public").mkdir(parents=True)
    (dist / "node_modules" / "left-pad").mkdir(parents=True)
    (dist / "package.json").write_text('{"name": "app", "scripts": {"start": "node server.js"}}')
    (dist / "server.js").write_text("require('http').createServer().listen(process.env.PORT)")
    (dist / "public" / "index.html").write_text("<h1>hi</h1>")
    (dist / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1")
    return dist
