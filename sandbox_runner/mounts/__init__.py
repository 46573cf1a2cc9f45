"""FUSE mounts for object storage (S3, S3-compatible, GCS)."""

from sandbox_runner.mounts.context import local_mount_context, sandbox_mount_context
from sandbox_runner.mounts.errors import (
    MountError,
    MountToolNotFoundError,
    MountUnmountError,
    MountValidationError,
)
from sandbox_runner.mounts.manager import MountManager
from sandbox_runner.mounts.platform import (
    find_tool,
    get_active_fuse_mounts,
    get_install_instructions,
    is_mount_point,
    unmount_fuse,
)
from sandbox_runner.mounts.types import (
    GCSMountConfig,
    MountConfig,
    MountContext,
    MountLogger,
    MountResult,
    S3Credentials,
    S3MountConfig,
)
from sandbox_runner.mounts.validation import validate_bucket_name, validate_endpoint

__all__ = [
    "MountManager",
    "MountContext",
    "MountLogger",
    "MountResult",
    "MountConfig",
    "S3MountConfig",
    "S3Credentials",
    "GCSMountConfig",
    "local_mount_context",
    "sandbox_mount_context",
    "is_mount_point",
    "get_active_fuse_mounts",
    "unmount_fuse",
    "find_tool",
    "get_install_instructions",
    "validate_bucket_name",
    "validate_endpoint",
    "MountError",
    "MountToolNotFoundError",
    "MountUnmountError",
    "MountValidationError",
]
