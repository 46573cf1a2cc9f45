"""Platform-specific FUSE mount handling.

Checks for mount points, lists active FUSE mounts, unmounts with fallbacks and
locates mount tools. Every command runs through a MountContext, so the same
code drives the host machine or a sandbox.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sandbox_runner.mounts.errors import MountUnmountError
from sandbox_runner.mounts.types import MountContext
from sandbox_runner.sandbox.runtime import CommandResult

LINUX = "linux"
DARWIN = "darwin"

MACFUSE_BUNDLE_PATH = "/Library/Filesystems/macfuse.fs"

# "s3fs on /mnt/data (macfuse, nodev, nosuid, mounted by user)"
_DARWIN_MOUNT_LINE = re.compile(r"^(?P<source>.+?) on (?P<path>.+) \((?P<options>[^)]*)\)$")
_DARWIN_FUSE_MARKERS = ("macfuse", "osxfuse", "fuse")

_INSTALL_INSTRUCTIONS: dict[tuple[str, str], str] = {
    ("s3fs", LINUX): "Install with: sudo apt-get install -y s3fs",
    ("s3fs", DARWIN): (
        "Install macFUSE first (brew install --cask macfuse), "
        "then: brew install gromgit/fuse/s3fs-mac"
    ),
    ("gcsfuse", LINUX): (
        "Install with: sudo apt-get install -y gcsfuse "
        "(after adding the gcsfuse apt repository)"
    ),
    ("gcsfuse", DARWIN): (
        "Install macFUSE first (brew install --cask macfuse), then: brew install gcsfuse"
    ),
    ("macfuse", DARWIN): (
        "Install with: brew install --cask macfuse "
        "(approve the system extension in System Settings afterwards)"
    ),
    ("fusermount", LINUX): "Install with: sudo apt-get install -y fuse3",
}


def _succeeded(result: CommandResult) -> bool:
    return result.exit_code == 0


@dataclass(frozen=True)
class CommandAttempt:
    """One command in a fallback chain."""

    command: str
    args: tuple[str, ...]
    succeeded: Callable[[CommandResult], bool] = _succeeded

    def describe(self) -> str:
        return " ".join((self.command, *self.args))


async def try_in_order(
    ctx: MountContext,
    attempts: Sequence[CommandAttempt],
) -> tuple[CommandAttempt | None, str]:
    """Run attempts in order until one succeeds.

    A raised exception counts as a failed attempt.

    Returns:
        Tuple of (winning attempt or None, error text of the last failure)
    """
    last_error = "no attempts"
    for attempt in attempts:
        try:
            result = await ctx.run(attempt.command, list(attempt.args))
        except Exception as e:
            last_error = str(e) or type(e).__name__
            ctx.logger.debug("mount_command_raised", command=attempt.describe(), error=last_error)
            continue

        if attempt.succeeded(result):
            return attempt, ""

        last_error = result.output.strip() or f"exit code {result.exit_code}"
        ctx.logger.debug(
            "mount_command_failed",
            command=attempt.describe(),
            exit_code=result.exit_code,
            error=last_error,
        )
    return None, last_error


def _darwin_mount_lines(output: str) -> list[tuple[str, str]]:
    """Parse macOS ``mount`` output into (path, options) pairs."""
    entries = []
    for line in output.splitlines():
        match = _DARWIN_MOUNT_LINE.match(line.strip())
        if match:
            entries.append((match.group("path"), match.group("options")))
    return entries


async def is_mount_point(path: str, ctx: MountContext) -> bool:
    """Check whether ``path`` is currently a mount point.

    Returns False on unsupported platforms and when the check itself fails.
    """
    try:
        if ctx.platform == LINUX:
            result = await ctx.run("mountpoint", ["-q", path])
            return result.exit_code == 0

        if ctx.platform == DARWIN:
            result = await ctx.run("mount", [])
            if result.exit_code != 0:
                return False
            return f" on {path} (" in result.stdout
    except Exception as e:
        ctx.logger.debug("mount_point_check_failed", path=path, error=str(e))
    return False


async def get_active_fuse_mounts(ctx: MountContext) -> list[str]:
    """List the paths of all active FUSE mounts ([] if they cannot be read)."""
    try:
        if ctx.platform == LINUX:
            result = await ctx.run(
                "sh", ["-c", "grep -E 'fuse' /proc/mounts | awk '{print $2}'"]
            )
            if result.exit_code != 0:
                return []
            # /proc/mounts escapes spaces in paths as \040
            return [
                line.strip().replace("\\040", " ")
                for line in result.stdout.splitlines()
                if line.strip()
            ]

        if ctx.platform == DARWIN:
            result = await ctx.run("mount", [])
            if result.exit_code != 0:
                return []
            return [
                path
                for path, options in _darwin_mount_lines(result.stdout)
                if any(marker in options for marker in _DARWIN_FUSE_MARKERS)
            ]
    except Exception as e:
        ctx.logger.warning("fuse_mount_listing_failed", error=str(e))
    return []


def _unmount_attempts(path: str, platform: str) -> list[CommandAttempt]:
    if platform == LINUX:
        return [
            CommandAttempt("fusermount", ("-u", path)),
            CommandAttempt("umount", (path,)),
            CommandAttempt("umount", ("-l", path)),
        ]
    if platform == DARWIN:
        return [
            CommandAttempt("umount", (path,)),
            CommandAttempt("diskutil", ("unmount", path)),
        ]
    return [CommandAttempt("umount", (path,))]


async def unmount_fuse(path: str, ctx: MountContext) -> None:
    """Unmount a FUSE filesystem, falling back through the platform's strategies.

    Linux tries ``fusermount -u``, ``umount`` then a lazy ``umount -l``;
    macOS tries ``umount`` then ``diskutil unmount``.

    Raises:
        MountUnmountError: If every strategy fails
    """
    winner, last_error = await try_in_order(ctx, _unmount_attempts(path, ctx.platform))
    if winner is None:
        ctx.logger.error("fuse_unmount_failed", path=path, error=last_error)
        raise MountUnmountError(path, last_error)
    ctx.logger.info("fuse_unmounted", path=path, method=winner.describe())


async def find_tool(name: str, ctx: MountContext) -> str | None:
    """Locate an executable on PATH.

    Returns:
        Absolute path of the tool, or None if it is not installed
    """
    try:
        result = await ctx.run("which", [name])
    except Exception as e:
        ctx.logger.debug("tool_lookup_failed", tool=name, error=str(e))
        return None

    if result.exit_code != 0:
        return None
    lines = result.stdout.strip().splitlines()
    return lines[0].strip() if lines and lines[0].strip() else None


async def is_macfuse_installed(ctx: MountContext) -> bool:
    """Check for the macFUSE filesystem bundle (macOS only)."""
    try:
        result = await ctx.run("test", ["-d", MACFUSE_BUNDLE_PATH])
    except Exception as e:
        ctx.logger.debug("macfuse_check_failed", error=str(e))
        return False
    return result.exit_code == 0


def get_install_instructions(tool: str, platform: str) -> str:
    """Human-readable install hint for a mount tool on a platform."""
    instructions = _INSTALL_INSTRUCTIONS.get((tool, platform))
    if instructions:
        return instructions
    return f"Install {tool} with your system package manager and make sure it is on PATH."
