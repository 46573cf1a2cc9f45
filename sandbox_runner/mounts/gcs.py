"""Mount Google Cloud Storage buckets with gcsfuse."""

from sandbox_runner.mounts.errors import MountError, MountToolNotFoundError
from sandbox_runner.mounts.platform import (
    DARWIN,
    find_tool,
    get_install_instructions,
    is_macfuse_installed,
    is_mount_point,
)
from sandbox_runner.mounts.types import GCSMountConfig, MountContext

GCSFUSE_MOUNT_TIMEOUT = 60


def build_gcsfuse_args(config: GCSMountConfig) -> list[str]:
    args = []
    if config.key_file:
        args.append(f"--key-file={config.key_file}")
    if config.read_only:
        args.extend(["-o", "ro"])
    if config.implicit_dirs:
        args.append("--implicit-dirs")
    args.extend([config.bucket, config.mount_path])
    return args


async def mount_gcs(config: GCSMountConfig, ctx: MountContext) -> None:
    """Mount a GCS bucket at ``config.mount_path``.

    Without a key file gcsfuse falls back to application default credentials.

    Raises:
        MountToolNotFoundError: If gcsfuse (or macFUSE on macOS) is missing
        MountError: If the directory or the gcsfuse command fails
    """
    gcsfuse = await find_tool("gcsfuse", ctx)
    if not gcsfuse:
        raise MountToolNotFoundError("gcsfuse", get_install_instructions("gcsfuse", ctx.platform))
    if ctx.platform == DARWIN and not await is_macfuse_installed(ctx):
        raise MountToolNotFoundError("macfuse", get_install_instructions("macfuse", ctx.platform))

    if await is_mount_point(config.mount_path, ctx):
        ctx.logger.info("gcs_already_mounted", bucket=config.bucket, path=config.mount_path)
        return

    result = await ctx.run("mkdir", ["-p", config.mount_path])
    if result.exit_code != 0:
        raise MountError(f"Failed to create mount directory {config.mount_path}: {result.output}")

    ctx.logger.info(
        "gcs_mounting",
        bucket=config.bucket,
        path=config.mount_path,
        read_only=config.read_only,
    )
    result = await ctx.run(gcsfuse, build_gcsfuse_args(config), GCSFUSE_MOUNT_TIMEOUT)
    if result.exit_code != 0:
        ctx.logger.error("gcs_mount_failed", bucket=config.bucket, exit_code=result.exit_code)
        raise MountError(
            f"Failed to mount gs://{config.bucket} at {config.mount_path}: "
            f"{result.output.strip() or f'exit code {result.exit_code}'}"
        )

    ctx.logger.info("gcs_mounted", bucket=config.bucket, path=config.mount_path)
