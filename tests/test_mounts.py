"""Tests for S3 / GCS mounting, the mount manager and mount contexts."""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeRuntime

from sandbox_runner.mounts import (
    GCSMountConfig,
    MountContext,
    MountError,
    MountManager,
    MountToolNotFoundError,
    MountUnmountError,
    S3MountConfig,
    local_mount_context,
    sandbox_mount_context,
)
from sandbox_runner.mounts.gcs import build_gcsfuse_args, mount_gcs
from sandbox_runner.mounts.s3 import build_s3fs_options, mount_s3, passwd_file_path
from sandbox_runner.sandbox.runtime import CommandResult

OK = CommandResult(exit_code=0, stdout="")


class ScriptedRun:
    """Async ``run`` callable answering by command name.

    Unscripted commands succeed. ``mountpoint`` reports "not mounted" unless
    scripted, so mounts proceed.
    """

    def __init__(self, responses: dict[str, CommandResult] | None = None):
        self.responses = {
            "which": CommandResult(exit_code=0, stdout="/usr/bin/tool\n"),
            "mountpoint": CommandResult(exit_code=1, stdout=""),
            **(responses or {}),
        }
        self.calls: list[tuple[str, list[str]]] = []

    async def __call__(self, command, args, timeout=None):
        self.calls.append((command, list(args)))
        return self.responses.get(command, OK)

    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]

    def args_for(self, command: str) -> list[str]:
        return next(args for cmd, args in self.calls if cmd == command)


def make_ctx(responses=None, platform="linux", write_file=None) -> MountContext:
    return MountContext(
        run=ScriptedRun(responses),
        platform=platform,
        logger=MagicMock(),
        write_file=write_file if write_file is not None else AsyncMock(),
    )


@pytest.fixture
def s3_config():
    return S3MountConfig(bucket="my-bucket", mount_path="/mnt/data")


# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------


class TestMountS3:
    """Tests for s3fs command construction and failures."""

    @pytest.mark.asyncio
    async def test_public_bucket(self, s3_config):
        ctx = make_ctx()

        await mount_s3(s3_config, ctx)

        assert ctx.run.commands() == ["which", "mountpoint", "mkdir", "/usr/bin/tool"]
        assert ctx.run.args_for("mkdir") == ["-p", "/mnt/data"]
        assert ctx.run.args_for("/usr/bin/tool") == [
            "my-bucket",
            "/mnt/data",
            "-o",
            "public_bucket=1",
        ]
        ctx.write_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_credentials_endpoint_region_prefix_read_only(self):
        config = S3MountConfig(
            bucket="my-bucket",
            mount_path="/mnt/data",
            endpoint="https://abc.r2.cloudflarestorage.com/",
            region="auto",
            prefix="exports",
            read_only=True,
            credentials={"access_key_id": "AKIA123", "secret_access_key": "s3cr3t"},
        )
        ctx = make_ctx()

        await mount_s3(config, ctx)

        passwd = passwd_file_path(config)
        ctx.write_file.assert_awaited_once_with(passwd, "AKIA123:s3cr3t\n")
        assert ctx.run.args_for("/usr/bin/tool") == [
            "my-bucket:/exports",
            "/mnt/data",
            "-o",
            f"passwd_file={passwd},url=https://abc.r2.cloudflarestorage.com,"
            "use_path_request_style,endpoint=auto,ro",
        ]

    def test_passwd_file_is_per_mount_path(self):
        a = S3MountConfig(bucket="my-bucket", mount_path="/mnt/a")
        b = S3MountConfig(bucket="my-bucket", mount_path="/mnt/b")

        assert passwd_file_path(a) != passwd_file_path(b)
        assert passwd_file_path(a).startswith("/tmp/.passwd-s3fs-my-bucket-")

    def test_options_without_endpoint(self, s3_config):
        assert build_s3fs_options(s3_config, "/tmp/p") == ["passwd_file=/tmp/p"]

    @pytest.mark.asyncio
    async def test_missing_s3fs(self, s3_config):
        ctx = make_ctx({"which": CommandResult(exit_code=1, stdout="")})

        with pytest.raises(MountToolNotFoundError) as exc_info:
            await mount_s3(s3_config, ctx)

        assert exc_info.value.tool == "s3fs"
        assert "apt-get" in str(exc_info.value)
        assert "mkdir" not in ctx.run.commands()

    @pytest.mark.asyncio
    async def test_darwin_requires_macfuse(self, s3_config):
        ctx = make_ctx({"test": CommandResult(exit_code=1, stdout="")}, platform="darwin")

        with pytest.raises(MountToolNotFoundError) as exc_info:
            await mount_s3(s3_config, ctx)

        assert exc_info.value.tool == "macfuse"

    @pytest.mark.asyncio
    async def test_already_mounted_is_a_no_op(self, s3_config):
        ctx = make_ctx({"mountpoint": OK})

        await mount_s3(s3_config, ctx)

        assert ctx.run.commands() == ["which", "mountpoint"]

    @pytest.mark.asyncio
    async def test_s3fs_failure(self, s3_config):
        ctx = make_ctx(
            {"/usr/bin/tool": CommandResult(exit_code=1, stdout="", stderr="bucket not found")}
        )

        with pytest.raises(MountError, match="bucket not found"):
            await mount_s3(s3_config, ctx)

    @pytest.mark.asyncio
    async def test_credentials_need_writable_context(self):
        config = S3MountConfig(
            bucket="my-bucket",
            mount_path="/mnt/data",
            credentials={"access_key_id": "AKIA123", "secret_access_key": "s3cr3t"},
        )
        ctx = make_ctx()
        ctx.write_file = None

        with pytest.raises(MountError, match="credential file"):
            await mount_s3(config, ctx)


# ---------------------------------------------------------------------------
# GCS
# ---------------------------------------------------------------------------


class TestMountGCS:
    """Tests for gcsfuse command construction."""

    def test_args_with_key_file_and_read_only(self):
        config = GCSMountConfig(
            bucket="gcs-bucket",
            mount_path="/mnt/gcs",
            key_file="/secrets/key.json",
            read_only=True,
        )

        assert build_gcsfuse_args(config) == [
            "--key-file=/secrets/key.json",
            "-o",
            "ro",
            "--implicit-dirs",
            "gcs-bucket",
            "/mnt/gcs",
        ]

    def test_args_minimal(self):
        config = GCSMountConfig(bucket="gcs-bucket", mount_path="/mnt/gcs", implicit_dirs=False)

        assert build_gcsfuse_args(config) == ["gcs-bucket", "/mnt/gcs"]

    @pytest.mark.asyncio
    async def test_mount(self):
        ctx = make_ctx()

        await mount_gcs(GCSMountConfig(bucket="gcs-bucket", mount_path="/mnt/gcs"), ctx)

        assert ctx.run.commands() == ["which", "mountpoint", "mkdir", "/usr/bin/tool"]

    @pytest.mark.asyncio
    async def test_missing_gcsfuse(self):
        ctx = make_ctx({"which": CommandResult(exit_code=1, stdout="")})

        with pytest.raises(MountToolNotFoundError) as exc_info:
            await mount_gcs(GCSMountConfig(bucket="gcs-bucket", mount_path="/mnt/gcs"), ctx)

        assert exc_info.value.tool == "gcsfuse"


# ---------------------------------------------------------------------------
# MountManager
# ---------------------------------------------------------------------------


class TestMountManager:
    """Tests for the mount facade."""

    @pytest.mark.asyncio
    async def test_mount_success(self, s3_config):
        result = await MountManager(make_ctx()).mount(s3_config)

        assert result.status == "mounted"
        assert result.mounted is True
        assert result.mount_path == "/mnt/data"

    @pytest.mark.asyncio
    async def test_missing_tool_is_unavailable(self, s3_config):
        """A missing FUSE tool degrades to SDK access instead of failing."""
        ctx = make_ctx({"which": CommandResult(exit_code=1, stdout="")})

        result = await MountManager(ctx).mount(s3_config)

        assert result.status == "unavailable"
        assert "s3fs" in result.message
        ctx.logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_mount_failure_is_error(self, s3_config):
        ctx = make_ctx({"mkdir": CommandResult(exit_code=1, stdout="", stderr="read-only fs")})

        result = await MountManager(ctx).mount(s3_config)

        assert result.status == "error"
        assert "read-only fs" in result.message

    @pytest.mark.asyncio
    async def test_credential_write_failure_is_error(self):
        """A context failure outside MountError still comes back as a result."""
        runtime = FakeRuntime()
        runtime.results["which s3fs"] = CommandResult(exit_code=0, stdout="/usr/bin/s3fs\n")
        runtime.results["mountpoint -q"] = CommandResult(exit_code=1, stdout="")
        runtime.results["chmod 600"] = CommandResult(
            exit_code=1, stdout="", stderr="Operation not permitted"
        )
        config = S3MountConfig(
            bucket="my-bucket",
            mount_path="/mnt/data",
            credentials={"access_key_id": "AKIA123", "secret_access_key": "s3cr3t"},
        )

        result = await MountManager(sandbox_mount_context(runtime)).mount(config)

        assert result.status == "error"
        assert "chmod 600" in result.message
        assert not any("s3fs my-bucket" in cmd for cmd in runtime.commands)

    @pytest.mark.asyncio
    async def test_run_exception_is_error(self, s3_config):
        ctx = make_ctx()
        scripted = ctx.run

        async def lose_connection_on_mkdir(command, args, timeout=None):
            if command == "mkdir":
                raise ConnectionError("sandbox unreachable")
            return await scripted(command, args, timeout)

        ctx.run = lose_connection_on_mkdir

        result = await MountManager(ctx).mount(s3_config)

        assert result.status == "error"
        assert result.message == "sandbox unreachable"
        ctx.logger.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_unmount_not_mounted(self):
        ctx = make_ctx()

        assert await MountManager(ctx).unmount("/mnt/data") is False
        assert "fusermount" not in ctx.run.commands()

    @pytest.mark.asyncio
    async def test_unmount_mounted(self):
        ctx = make_ctx({"mountpoint": OK})

        assert await MountManager(ctx).unmount("/mnt/data") is True
        assert ctx.run.args_for("fusermount") == ["-u", "/mnt/data"]

    @pytest.mark.asyncio
    async def test_unmount_all(self):
        ctx = make_ctx({"sh": CommandResult(exit_code=0, stdout="/mnt/a\n/mnt/b\n")})

        assert await MountManager(ctx).unmount_all() == ["/mnt/a", "/mnt/b"]

    @pytest.mark.asyncio
    async def test_unmount_all_reports_failures(self):
        """Every mount is attempted; leftovers are raised, not hidden."""
        fail = CommandResult(exit_code=1, stdout="", stderr="busy")
        ctx = make_ctx(
            {
                "sh": CommandResult(exit_code=0, stdout="/mnt/a\n/mnt/b\n"),
                "fusermount": fail,
                "umount": fail,
            }
        )

        with pytest.raises(MountUnmountError) as exc_info:
            await MountManager(ctx).unmount_all()

        assert "/mnt/a" in str(exc_info.value)
        assert "/mnt/b" in str(exc_info.value)


# ---------------------------------------------------------------------------
# Mount contexts
# ---------------------------------------------------------------------------


class TestMountContexts:
    """Tests for host and sandbox execution contexts."""

    @pytest.mark.asyncio
    async def test_sandbox_context_quotes_arguments(self):
        runtime = FakeRuntime()
        ctx = sandbox_mount_context(runtime)

        await ctx.run("mkdir", ["-p", "/mnt/my data"])

        assert ctx.platform == "linux"
        assert runtime.commands == ["mkdir -p '/mnt/my data'"]

    @pytest.mark.asyncio
    async def test_sandbox_context_writes_private_file(self):
        runtime = FakeRuntime()
        ctx = sandbox_mount_context(runtime)

        await ctx.write_file("/tmp/.passwd-s3fs", "KEY:SECRET\n")

        assert runtime.files["/tmp/.passwd-s3fs"] == "KEY:SECRET\n"
        assert runtime.commands[0] == "(umask 077 && : > /tmp/.passwd-s3fs)"
        assert runtime.commands[-1] == "chmod 600 /tmp/.passwd-s3fs"

    @pytest.mark.asyncio
    async def test_sandbox_context_drives_manager(self):
        runtime = FakeRuntime()
        runtime.results["which s3fs"] = CommandResult(exit_code=0, stdout="/usr/bin/s3fs\n")
        runtime.results["mountpoint -q"] = CommandResult(exit_code=1, stdout="")

        result = await MountManager(sandbox_mount_context(runtime)).mount(
            S3MountConfig(bucket="my-bucket", mount_path="/mnt/data")
        )

        assert result.status == "mounted"
        assert runtime.commands[-1] == "/usr/bin/s3fs my-bucket /mnt/data -o public_bucket=1"

    def test_local_context_platform(self):
        ctx = local_mount_context()

        expected = "linux" if sys.platform.startswith("linux") else sys.platform
        assert ctx.platform == expected
        assert ctx.write_file is not None

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX commands")
    async def test_local_context_runs_argv(self):
        ctx = local_mount_context()

        result = await ctx.run("echo", ["hello world"])

        assert result.exit_code == 0
        assert result.stdout == "hello world\n"

    @pytest.mark.asyncio
    async def test_local_context_missing_command(self):
        ctx = local_mount_context()

        result = await ctx.run("definitely-not-a-real-command-xyz", [])

        assert result.exit_code == 127

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    async def test_local_context_write_file_is_private(self, tmp_path):
        ctx = local_mount_context()
        target = tmp_path / "creds" / "passwd"

        await ctx.write_file(str(target), "KEY:SECRET\n")

        assert target.read_text() == "KEY:SECRET\n"
        assert os.stat(target).st_mode & 0o777 == 0o600
