"""Errors raised by the mount subsystem."""


class MountError(Exception):
    """Base class for mount failures."""


class MountValidationError(MountError, ValueError):
    """Raised when a bucket name or endpoint is unsafe to put on a command line."""


class MountToolNotFoundError(MountError):
    """Raised when a required FUSE tool (s3fs, gcsfuse, macFUSE) is not installed.

    Kept apart from general mount errors so callers can report the mount as
    ``unavailable`` instead of failed: the bucket is still reachable through
    the storage SDK, only sandbox processes lose the mounted path.
    """

    def __init__(self, tool: str, instructions: str):
        self.tool = tool
        self.instructions = instructions
        super().__init__(f"{tool} is not installed. {instructions}")


class MountUnmountError(MountError):
    """Raised when every unmount strategy for a path has failed."""

    def __init__(self, path: str, last_error: str):
        self.path = path
        self.last_error = last_error
        super().__init__(f"Failed to unmount {path}: {last_error}")
