"""Mount S3 and S3-compatible buckets (R2, MinIO) with s3fs."""

import hashlib

from sandbox_runner.mounts.errors import MountError, MountToolNotFoundError
from sandbox_runner.mounts.platform import (
    DARWIN,
    find_tool,
    get_install_instructions,
    is_macfuse_installed,
    is_mount_point,
)
from sandbox_runner.mounts.types import MountContext, S3MountConfig

S3FS_MOUNT_TIMEOUT = 60
PASSWD_FILE_DIR = "/tmp"


def passwd_file_path(config: S3MountConfig) -> str:
    """Credential file location, unique per bucket and mount path."""
    digest = hashlib.sha256(config.mount_path.encode()).hexdigest()[:8]
    return f"{PASSWD_FILE_DIR}/.passwd-s3fs-{config.bucket}-{digest}"


def build_s3fs_options(config: S3MountConfig, passwd_file: str | None) -> list[str]:
    """Build the comma-joined ``-o`` options for s3fs."""
    options = [f"passwd_file={passwd_file}"] if passwd_file else ["public_bucket=1"]
    if config.endpoint:
        options.append(f"url={config.endpoint}")
        # Custom endpoints rarely support virtual-hosted bucket addressing
        options.append("use_path_request_style")
    if config.region:
        options.append(f"endpoint={config.region}")
    if config.read_only:
        options.append("ro")
    return options


def build_s3fs_args(config: S3MountConfig, passwd_file: str | None) -> list[str]:
    return [
        config.source,
        config.mount_path,
        "-o",
        ",".join(build_s3fs_options(config, passwd_file)),
    ]


async def mount_s3(config: S3MountConfig, ctx: MountContext) -> None:
    """Mount an S3 bucket at ``config.mount_path``.

    Does nothing if the path is already a mount point.

    Raises:
        MountToolNotFoundError: If s3fs (or macFUSE on macOS) is missing
        MountError: If the directory, credential file or s3fs command fails
    """
    s3fs = await find_tool("s3fs", ctx)
    if not s3fs:
        raise MountToolNotFoundError("s3fs", get_install_instructions("s3fs", ctx.platform))
    if ctx.platform == DARWIN and not await is_macfuse_installed(ctx):
        raise MountToolNotFoundError("macfuse", get_install_instructions("macfuse", ctx.platform))

    if await is_mount_point(config.mount_path, ctx):
        ctx.logger.info("s3_already_mounted", bucket=config.bucket, path=config.mount_path)
        return

    result = await ctx.run("mkdir", ["-p", config.mount_path])
    if result.exit_code != 0:
        raise MountError(f"Failed to create mount directory {config.mount_path}: {result.output}")

    passwd_file = None
    if config.credentials is not None:
        if ctx.write_file is None:
            raise MountError("This mount context cannot write the s3fs credential file")
        passwd_file = passwd_file_path(config)
        secret = config.credentials.secret_access_key.get_secret_value()
        await ctx.write_file(passwd_file, f"{config.credentials.access_key_id}:{secret}\n")

    ctx.logger.info(
        "s3_mounting",
        bucket=config.bucket,
        path=config.mount_path,
        endpoint=config.endpoint,
        read_only=config.read_only,
    )
    result = await ctx.run(s3fs, build_s3fs_args(config, passwd_file), S3FS_MOUNT_TIMEOUT)
    if result.exit_code != 0:
        ctx.logger.error("s3_mount_failed", bucket=config.bucket, exit_code=result.exit_code)
        raise MountError(
            f"Failed to mount s3://{config.bucket} at {config.mount_path}: "
            f"{result.output.strip() or f'exit code {result.exit_code}'}"
        )

    ctx.logger.info("s3_mounted", bucket=config.bucket, path=config.mount_path)
