"""Mount configuration models and the execution context mount operations run in."""

import posixpath
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Protocol, Union

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from sandbox_runner.mounts.validation import validate_bucket_name, validate_endpoint
from sandbox_runner.sandbox.runtime import CommandResult

RunFn = Callable[..., Awaitable[CommandResult]]
WriteFileFn = Callable[[str, str], Awaitable[None]]

_REGION_PATTERN = re.compile(r"[a-z0-9-]{1,64}")
_PREFIX_PATTERN = re.compile(r"[A-Za-z0-9._/-]+")


class MountLogger(Protocol):
    """Four-level logger accepted by mount operations (loguru's logger fits)."""

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None: ...

    def info(self, message: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, message: str, *args: Any, **kwargs: Any) -> None: ...


@dataclass
class MountContext:
    """Where mount commands execute.

    Attributes:
        run: Runs ``command`` with an argv list and optional timeout (seconds).
            Non-zero exits come back as a CommandResult, never as an exception.
        platform: ``"linux"``, ``"darwin"`` or any other platform name
        logger: Receives mount progress and failures
        write_file: Writes a private (0600) file, used for credential files.
            Contexts without one cannot mount with inline credentials.
    """

    run: RunFn
    platform: str
    logger: MountLogger
    write_file: WriteFileFn | None = None


def _check_mount_path(value: str) -> str:
    if not value or not value.startswith("/"):
        raise ValueError(f'Mount path must be absolute: "{value}"')
    normalized = posixpath.normpath(value)
    if normalized == "/":
        raise ValueError("Refusing to mount over /")
    return normalized


class S3Credentials(BaseModel):
    """Access key pair for S3 or an S3-compatible store."""

    access_key_id: str = Field(..., min_length=1)
    secret_access_key: SecretStr

    @field_validator("access_key_id")
    @classmethod
    def no_separator(cls, v: str) -> str:
        # passwd_file format is ACCESS_KEY:SECRET
        if ":" in v or any(ch.isspace() for ch in v):
            raise ValueError("access_key_id must not contain ':' or whitespace")
        return v


class S3MountConfig(BaseModel):
    """S3 or S3-compatible bucket mounted with s3fs."""

    type: Literal["s3"] = "s3"
    bucket: str
    mount_path: str
    endpoint: str | None = None
    credentials: S3Credentials | None = None
    region: str | None = None
    prefix: str | None = None
    read_only: bool = False

    @field_validator("bucket")
    @classmethod
    def check_bucket(cls, v: str) -> str:
        validate_bucket_name(v)
        return v

    @field_validator("endpoint")
    @classmethod
    def check_endpoint(cls, v: str | None) -> str | None:
        if v is None:
            return v
        validate_endpoint(v)
        # s3fs options are comma separated
        if "," in v:
            raise ValueError(f'Endpoint must not contain ",": "{v}"')
        return v.rstrip("/")

    @field_validator("mount_path")
    @classmethod
    def check_mount_path(cls, v: str) -> str:
        return _check_mount_path(v)

    @field_validator("region")
    @classmethod
    def check_region(cls, v: str | None) -> str | None:
        if v is not None and not _REGION_PATTERN.fullmatch(v):
            raise ValueError(f'Invalid region: "{v}"')
        return v

    @field_validator("prefix")
    @classmethod
    def check_prefix(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip("/")
        if not v:
            return None
        if not _PREFIX_PATTERN.fullmatch(v) or ".." in v.split("/"):
            raise ValueError(f'Invalid prefix: "{v}"')
        return v

    @property
    def source(self) -> str:
        """s3fs source argument: ``bucket`` or ``bucket:/prefix``."""
        return f"{self.bucket}:/{self.prefix}" if self.prefix else self.bucket


class GCSMountConfig(BaseModel):
    """Google Cloud Storage bucket mounted with gcsfuse."""

    type: Literal["gcs"] = "gcs"
    bucket: str
    mount_path: str
    key_file: str | None = None
    read_only: bool = False
    implicit_dirs: bool = True

    @field_validator("bucket")
    @classmethod
    def check_bucket(cls, v: str) -> str:
        validate_bucket_name(v)
        return v

    @field_validator("mount_path")
    @classmethod
    def check_mount_path(cls, v: str) -> str:
        return _check_mount_path(v)

    @model_validator(mode="after")
    def check_key_file(self) -> "GCSMountConfig":
        if self.key_file is not None and not self.key_file.startswith("/"):
            raise ValueError(f'key_file must be an absolute path: "{self.key_file}"')
        return self


MountConfig = Annotated[Union[S3MountConfig, GCSMountConfig], Field(discriminator="type")]


@dataclass
class MountResult:
    """Outcome of a mount request.

    ``unavailable`` means the FUSE tool is missing on the target: the bucket
    is still usable through the storage SDK, just not as a path.
    """

    status: Literal["mounted", "unavailable", "error"]
    mount_path: str
    message: str | None = None

    @property
    def mounted(self) -> bool:
        return self.status == "mounted"
