"""BoxLite Runtime adapter.

Wraps boxlite.SimpleBox to satisfy the SandboxRuntime protocol for local
container-based runs of a server bundle.
"""

import asyncio
import base64
import shlex
import uuid
from pathlib import Path

import boxlite

from sandbox_runner.config import settings
from sandbox_runner.core.logging import get_logger
from sandbox_runner.sandbox.boxlite.ports import release_host_ports, reserve_host_ports
from sandbox_runner.sandbox.runtime import CommandResult

logger = get_logger(__name__)

# Base64 payload per exec call when streaming a file into the box
UPLOAD_CHUNK_BYTES = 48 * 1024


class BoxLiteRuntime:
    """Adapter wrapping boxlite.SimpleBox to satisfy SandboxRuntime protocol.

    Maps protocol methods to boxlite SDK calls:
    - run_command()  -> box.exec("bash", "-c", cmd)
    - read_file()    -> exec cat (text) or base64 (binary)
    - write_file()   -> exec with base64 pipe
    - upload_file()  -> chunked base64 appends
    - get_host_url() -> lookup pre-configured guest:host port map
    - kill()         -> box.shutdown(), falling back to __aexit__
    """

    def __init__(
        self,
        box: "boxlite.SimpleBox",
        port_map: dict[int, int] | None = None,
        envs: dict[str, str] | None = None,
    ) -> None:
        self._box = box
        self._id = f"boxlite-{uuid.uuid4().hex[:12]}"
        # Maps guest port -> host port
        self._port_map: dict[int, int] = port_map or {}
        self._envs: dict[str, str] = envs or {}
        self._killed: bool = False

    @property
    def sandbox_id(self) -> str:
        """Get a unique identifier for this BoxLite sandbox."""
        return self._id

    @classmethod
    async def create(
        cls,
        image: str | None = None,
        cpus: int | None = None,
        memory_mib: int | None = None,
        disk_size_gb: int | None = None,
        ports: list[int] | None = None,
        envs: dict[str, str] | None = None,
    ) -> "BoxLiteRuntime":
        """Create and start a new BoxLite sandbox.

        Args:
            image: Container image to use
            cpus: Number of CPUs
            memory_mib: Memory limit in MiB
            disk_size_gb: Disk size limit in GB
            ports: Guest ports to publish; each gets a free host port at or
                above ``boxlite_host_port_start``, unique across live boxes
            envs: Environment variables exported for every command

        Returns:
            BoxLiteRuntime instance
        """
        _image = image or settings.boxlite_image
        _cpus = cpus or settings.boxlite_cpus
        _memory = memory_mib or settings.boxlite_memory_mib
        _disk = disk_size_gb or settings.boxlite_disk_size_gb
        guest_ports = list(ports or [])
        host_ports = reserve_host_ports(len(guest_ports), settings.boxlite_host_port_start)
        port_map = dict(zip(guest_ports, host_ports))

        kwargs: dict = {}
        if port_map:
            # SimpleBox takes (host, guest) tuples
            kwargs["ports"] = [(host, guest) for guest, host in port_map.items()]

        try:
            box = boxlite.SimpleBox(
                image=_image,
                cpus=_cpus,
                memory_mib=_memory,
                disk_size_gb=_disk,
                auto_remove=settings.boxlite_auto_remove,
                **kwargs,
            )
            await box.start()
        except Exception:
            release_host_ports(host_ports)
            raise

        runtime = cls(box, port_map=port_map, envs=envs)
        logger.info(
            "boxlite_sandbox_created",
            sandbox_id=runtime.sandbox_id,
            image=_image,
            cpus=_cpus,
            memory_mib=_memory,
            ports=port_map,
        )
        return runtime

    def _wrap(self, command: str, cwd: str | None) -> str:
        prefix = ""
        if self._envs:
            exports = " ".join(
                f"{key}={shlex.quote(value)}" for key, value in self._envs.items()
            )
            prefix = f"export {exports}; "
        if cwd:
            prefix += f"cd {shlex.quote(cwd)} && "
        return prefix + command

    async def run_command(
        self,
        command: str,
        timeout: int | None = 60,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run a command via BoxLite exec."""
        exec_call = self._box.exec("bash", "-c", self._wrap(command, cwd))
        try:
            if timeout:
                result = await asyncio.wait_for(exec_call, timeout=timeout)
            else:
                result = await exec_call
        except asyncio.TimeoutError:
            return CommandResult(
                exit_code=124,
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
        """Read a file via exec cat/base64."""
        if format == "bytes":
            result = await self.run_command(f"base64 {shlex.quote(path)}", timeout=30)
            if result.exit_code != 0:
                raise FileNotFoundError(f"Failed to read {path}: {result.stderr}")
            return base64.b64decode(result.stdout.strip())

        result = await self.run_command(f"cat {shlex.quote(path)}", timeout=30)
        if result.exit_code != 0:
            raise FileNotFoundError(f"Failed to read {path}: {result.stderr}")
        return result.stdout

    async def write_file(
        self,
        path: str,
        content: bytes | str,
    ) -> None:
        """Write content to a file via a base64 pipe."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        encoded = base64.b64encode(content).decode("ascii")
        result = await self.run_command(
            f"printf '%s' {shlex.quote(encoded)} | base64 -d > {shlex.quote(path)}",
            timeout=30,
        )
        if result.exit_code != 0:
            raise IOError(f"Failed to write {path}: {result.stderr}")

    async def upload_file(self, local_path: str, remote_path: str) -> None:
        """Stream a local file into the box in base64 chunks.

        Exec arguments have a length ceiling, so large archives are appended
        piece by piece and decoded once at the end.
        """
        data = await asyncio.to_thread(Path(local_path).read_bytes)
        staging = f"{remote_path}.b64"
        quoted_staging = shlex.quote(staging)

        result = await self.run_command(f": > {quoted_staging}", timeout=30)
        if result.exit_code != 0:
            raise IOError(f"Failed to upload {local_path}: {result.stderr}")

        for offset in range(0, len(data), UPLOAD_CHUNK_BYTES):
            chunk = base64.b64encode(data[offset : offset + UPLOAD_CHUNK_BYTES]).decode("ascii")
            result = await self.run_command(
                f"printf '%s\\n' {shlex.quote(chunk)} >> {quoted_staging}",
                timeout=30,
            )
            if result.exit_code != 0:
                raise IOError(f"Failed to upload {local_path}: {result.stderr}")

        result = await self.run_command(
            f"base64 -d {quoted_staging} > {shlex.quote(remote_path)} && rm -f {quoted_staging}",
            timeout=60,
        )
        if result.exit_code != 0:
            raise IOError(f"Failed to upload {local_path}: {result.stderr}")

        logger.debug(
            "boxlite_file_uploaded",
            sandbox_id=self._id,
            remote_path=remote_path,
            bytes=len(data),
        )

    async def get_host_url(self, port: int) -> str:
        """Get the localhost URL for a forwarded port.

        Returns a full URL with scheme, e.g. "http://localhost:10000".
        """
        if port in self._port_map:
            host_port = self._port_map[port]
        else:
            # Port was not published at creation time; the URL is likely unreachable
            logger.warning(
                "boxlite_port_not_mapped_using_identity_fallback",
                sandbox_id=self._id,
                guest_port=port,
                available_mappings=self._port_map,
            )
            host_port = port

        return f"http://localhost:{host_port}"

    async def kill(self) -> None:
        """Stop and remove the BoxLite container.

        Uses shutdown() first for a clean stop, falling back to __aexit__
        if shutdown raises. A _killed flag prevents double-cleanup.
        """
        if self._killed:
            return
        self._killed = True
        release_host_ports(list(self._port_map.values()))

        try:
            await self._box.shutdown()
            logger.info("boxlite_sandbox_stopped", sandbox_id=self._id)
        except Exception as shutdown_err:
            logger.debug(
                "boxlite_shutdown_failed_trying_aexit",
                sandbox_id=self._id,
                error=str(shutdown_err),
            )
            await self._box.__aexit__(None, None, None)
            logger.info("boxlite_sandbox_stopped_via_aexit", sandbox_id=self._id)
