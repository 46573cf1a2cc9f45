"""Mount Manager.

Single entry point for attaching and detaching object-storage buckets. The
manager holds only its MountContext; which paths are mounted is always read
back from the platform, never remembered.
"""

from sandbox_runner.mounts.errors import MountError, MountToolNotFoundError, MountUnmountError
from sandbox_runner.mounts.gcs import mount_gcs
from sandbox_runner.mounts.platform import get_active_fuse_mounts, is_mount_point, unmount_fuse
from sandbox_runner.mounts.s3 import mount_s3
from sandbox_runner.mounts.types import (
    GCSMountConfig,
    MountConfig,
    MountContext,
    MountResult,
    S3MountConfig,
)


class MountManager:
    """Mounts and unmounts buckets through one MountContext."""

    def __init__(self, ctx: MountContext):
        self.ctx = ctx

    async def mount(self, config: MountConfig) -> MountResult:
        """Mount a bucket, reporting failure in the result instead of raising.

        A missing FUSE tool yields ``unavailable`` so callers can fall back to
        SDK access; any other mount failure yields ``error``.
        """
        try:
            if isinstance(config, S3MountConfig):
                await mount_s3(config, self.ctx)
            elif isinstance(config, GCSMountConfig):
                await mount_gcs(config, self.ctx)
            else:
                raise MountError(f"Unsupported mount type: {type(config).__name__}")
        except MountToolNotFoundError as e:
            self.ctx.logger.warning(
                "mount_tool_unavailable",
                tool=e.tool,
                path=config.mount_path,
                instructions=e.instructions,
            )
            return MountResult(status="unavailable", mount_path=config.mount_path, message=str(e))
        except MountError as e:
            return MountResult(status="error", mount_path=config.mount_path, message=str(e))
        except Exception as e:
            self.ctx.logger.error(
                "mount_failed_unexpectedly",
                path=config.mount_path,
                error_type=type(e).__name__,
                error=str(e),
            )
            return MountResult(status="error", mount_path=config.mount_path, message=str(e))

        return MountResult(status="mounted", mount_path=config.mount_path)

    async def unmount(self, path: str) -> bool:
        """Unmount ``path`` if it is mounted.

        Returns:
            True if something was unmounted, False if the path was not mounted

        Raises:
            MountUnmountError: If every unmount strategy fails
        """
        if not await is_mount_point(path, self.ctx):
            self.ctx.logger.debug("unmount_skipped_not_mounted", path=path)
            return False
        await unmount_fuse(path, self.ctx)
        return True

    async def unmount_all(self) -> list[str]:
        """Unmount every active FUSE mount.

        Keeps going past individual failures, then raises if any remain.

        Returns:
            Paths that were unmounted

        Raises:
            MountUnmountError: Naming every path that could not be unmounted
        """
        unmounted: list[str] = []
        failures: list[MountUnmountError] = []
        for path in await get_active_fuse_mounts(self.ctx):
            try:
                await unmount_fuse(path, self.ctx)
                unmounted.append(path)
            except MountUnmountError as e:
                failures.append(e)

        if failures:
            paths = ", ".join(e.path for e in failures)
            raise MountUnmountError(paths, "; ".join(e.last_error for e in failures))
        self.ctx.logger.info("fuse_mounts_cleared", count=len(unmounted))
        return unmounted
