"""Validation for values that end up on mount command lines.

Bucket names and endpoints are checked when a mount config is built, so by the
time a mount command runs its inputs are already safe.
"""

import re
from urllib.parse import urlparse

from sandbox_runner.mounts.errors import MountValidationError

# S3, GCS and S3-compatible (R2, MinIO) naming rules
_SAFE_BUCKET_NAME = re.compile(r"[a-z0-9][a-z0-9._-]{1,61}[a-z0-9]")
_IPV4_LIKE_BUCKET = re.compile(r"(?:\d{1,3}\.){3}\d{1,3}")
_FORBIDDEN_BUCKET_SEQUENCES = ("..", "-.", ".-")

_ALLOWED_ENDPOINT_SCHEMES = ("http", "https")


def validate_bucket_name(bucket: str) -> None:
    """Check a bucket name against the shared object-storage naming rules.

    Raises:
        MountValidationError: If the name is not 3-63 lowercase alphanumeric,
            hyphen, underscore or dot characters with alphanumeric ends, contains
            ``..``, ``-.`` or ``.-``, or looks like an IPv4 address
    """
    if not isinstance(bucket, str) or not _SAFE_BUCKET_NAME.fullmatch(bucket):
        raise MountValidationError(
            f'Invalid bucket name: "{bucket}". Bucket names must be 3-63 characters, '
            "lowercase alphanumeric, hyphens, underscores, or dots."
        )
    if any(seq in bucket for seq in _FORBIDDEN_BUCKET_SEQUENCES):
        raise MountValidationError(
            f'Invalid bucket name: "{bucket}". Adjacent dots and dot-hyphen pairs are not allowed.'
        )
    if _IPV4_LIKE_BUCKET.fullmatch(bucket):
        raise MountValidationError(
            f'Invalid bucket name: "{bucket}". Bucket names must not look like an IP address.'
        )


def validate_endpoint(endpoint: str) -> None:
    """Check that an endpoint is a well-formed http:// or https:// URL.

    Raises:
        MountValidationError: If the URL is malformed or uses another scheme
    """
    if not isinstance(endpoint, str) or not endpoint or any(ch.isspace() for ch in endpoint):
        raise MountValidationError(f'Invalid endpoint URL: "{endpoint}"')

    try:
        parsed = urlparse(endpoint)
        # Accessing .port validates it
        parsed.port
    except ValueError:
        raise MountValidationError(f'Invalid endpoint URL: "{endpoint}"') from None

    if parsed.scheme not in _ALLOWED_ENDPOINT_SCHEMES:
        raise MountValidationError(
            f'Invalid endpoint URL scheme: "{parsed.scheme}". Only http and https are allowed.'
        )
    if not parsed.hostname:
        raise MountValidationError(f'Invalid endpoint URL: "{endpoint}"')
